"""
Run sequencing: pre-flight checks, session start (with one interactive
re-login), then list / refresh / grant over the resolved scripts.
"""

import json
import sys
import traceback
from collections import Counter
from dataclasses import asdict
from typing import List, Tuple

from playwright.sync_api import Error as PwError

from . import config
from .discovery import discover_scripts
from .errors import AccessManagerError, ConfigError, SessionError
from .grants import GrantOutcome, grant_script_access
from .refs import ResourceRef, is_login_page_url
from .resolver import resolve_targets
from .selection import SelectionStore
from .session import BrowserSession, interactive_login


def preflight(cfg, store: SelectionStore) -> List[ResourceRef]:
    """Validate inputs before touching the browser; returns the resolved targets."""
    if cfg.mode == "grant" and not cfg.users:
        raise ConfigError("No users provided. Use --users to specify one or more TradingView usernames.")

    targets = resolve_targets(cfg.scripts, store)
    needs_profile_url = cfg.mode in ("refresh", "list") or (cfg.mode == "grant" and not targets)
    if needs_profile_url and not cfg.profile_url:
        raise ConfigError("Missing --profile-url. It is required for listing or refreshing scripts from a profile.")

    if not cfg.storage_state.exists():
        raise ConfigError(
            f"Session file not found at {cfg.storage_state}. "
            "Run `access-manager save-session` first to log in and create it."
        )
    return targets


def _start_authenticated(cfg, session_factory):
    """Start one session and land on the auth-check URL; closes it on any failure."""
    session = session_factory(cfg)
    try:
        surface = session.start()
        surface.goto(cfg.auth_check_url)
        signed_in = not is_login_page_url(surface.current_url)
    except BaseException:
        session.close()
        raise
    return session, surface, signed_in


def open_session(cfg, session_factory=BrowserSession, login=interactive_login):
    """
    Start a browser session that is signed in.

    Args:
        cfg: the run's RunConfig.
        session_factory: builds a session object with start()/close().
        login: interactive login flow, run once when the saved state is stale.

    Returns:
        (session, surface) for a session that is not on the sign-in page.

    Raises:
        SessionError: still on the sign-in page after one interactive login.
    """
    session, surface, signed_in = _start_authenticated(cfg, session_factory)
    if signed_in:
        return session, surface

    session.close()
    login(cfg)

    session, surface, signed_in = _start_authenticated(cfg, session_factory)
    if not signed_in:
        session.close()
        raise SessionError("Still on the sign-in page after interactive login")
    return session, surface


def refresh_selection(surface, cfg, store: SelectionStore):
    scripts = discover_scripts(surface, cfg.profile_url)
    merged = store.refresh(scripts)
    print(f"✅ Refresh complete. \"{store.path}\" has been updated.")
    return merged


def list_scripts(surface, cfg, targets: List[ResourceRef]) -> List[ResourceRef]:
    if not targets:
        targets = discover_scripts(surface, cfg.profile_url)
    print("Discovered scripts:")
    print(json.dumps([asdict(t) for t in targets], indent=2, ensure_ascii=False))
    print("✅ List-only mode: done.")
    return targets


def grant_targets(surface, cfg, targets: List[ResourceRef]) -> List[Tuple[ResourceRef, GrantOutcome]]:
    requests = cfg.grantee_requests()
    results = []
    for script in targets:
        print(f"[run] Processing script: {script.title or '(no title)'} -> {script.url}")
        try:
            outcomes = grant_script_access(surface, script, requests)
        except Exception as e:
            raise AccessManagerError(f"Failed while processing {script.url or script.title}: {e}") from e
        results.extend((script, o) for o in outcomes)
        surface.pause(config.SCRIPT_SETTLE_MS)
    return results


def print_summary(results: List[Tuple[ResourceRef, GrantOutcome]]):
    counts = Counter(o.status for _, o in results)
    print("=" * 60)
    print("Summary: " + ", ".join(f"{k}={counts[k]}" for k in ("granted", "not_found", "skipped", "failed")))
    for script, outcome in results:
        if outcome.status != "granted":
            print(f"   {script.id or script.url}: {outcome}")
    print("=" * 60)


def run(cfg, session_factory=BrowserSession, login=interactive_login, store=None) -> int:
    """
    Execute one run in the mode named by `cfg.mode`.

    Args:
        cfg: the run's RunConfig.
        session_factory: builds the browser session (BrowserSession by default).
        login: interactive login used when the saved session is signed out.
        store: selection store; defaults to one on `cfg.selection_file`.

    Returns:
        Process exit status: 0 on success, 1 on pre-flight, session or
        processing errors.
    """
    store = store or SelectionStore(cfg.selection_file)
    try:
        targets = preflight(cfg, store)
    except ConfigError as e:
        print(f"🔴 {e}", file=sys.stderr)
        return 1

    print("🚀 Starting TradingView access manager...")
    try:
        session, surface = open_session(cfg, session_factory=session_factory, login=login)
    except (SessionError, PwError) as e:
        print(f"🔴 Could not start an authenticated session: {e}", file=sys.stderr)
        return 1

    try:
        if cfg.mode == "refresh":
            refresh_selection(surface, cfg, store)
            return 0

        if cfg.mode == "list":
            list_scripts(surface, cfg, targets)
            return 0

        if not targets:
            targets = discover_scripts(surface, cfg.profile_url)
            if not cfg.manage_all:
                print(
                    "⚠️  No scripts specified via --scripts and no scripts are enabled in "
                    f"{store.path}. Nothing to do.",
                    file=sys.stderr,
                )
                return 0

        results = grant_targets(surface, cfg, targets)
        print_summary(results)
        print("🎉 All targets processed.")
        return 0
    except Exception as e:
        print(f"🔴 An error occurred: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1
    finally:
        session.close()
