"""
Configuration for the invite-only access manager.

Module-level constants describe the remote platform (URLs, dialog names,
timeouts, settle delays). RunConfig is the per-run, immutable set of values
built once by the CLI and passed to every component that needs it.
"""

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, Tuple

from .errors import ConfigError
from .expiration import Expiration, GranteeRequest, resolve_expiration

# Platform
ORIGIN = "https://www.tradingview.com"
SIGNIN_URL = f"{ORIGIN}/accounts/signin/"
SIGNIN_PATH = "/accounts/signin"
AUTH_CHECK_URL = f"{ORIGIN}/chart/"
SCRIPT_URL_TEMPLATE = ORIGIN + "/script/{id}/"

# Files (relative to the working directory)
STORAGE_STATE_FILE = "tv-storage.json"
PROFILE_DIR = "tv-profile"
SELECTION_FILE = "script-selection.json"

# Browser
VIEWPORT = {"width": 1300, "height": 900}
LOGIN_ARGS = ["--disable-blink-features=AutomationControlled"]
NAVIGATION_TIMEOUT_MS = 60_000
NETWORK_IDLE_TIMEOUT_MS = 30_000
LOGIN_TIMEOUT_MS = 180_000

# Discovery
DISCOVERY_TIMEOUT_MS = 30_000
MAX_SCROLL_ROUNDS = 20
SCROLL_STEP_PX = 2000
SCROLL_SETTLE_MS = 800
FILTER_SETTLE_MS = 600

# Manage access dialog
DIALOG_TIMEOUT_MS = 10_000
MENU_SCAN_LIMIT = 6
TAB_SETTLE_MS = 400
TAB_RETURN_SETTLE_MS = 300
# remote user search is debounced and exposes no completion signal
SEARCH_SETTLE_MS = 1800
CHECKBOX_SETTLE_MS = 150
DATE_INPUT_POLLS = 6
DATE_INPUT_POLL_MS = 200
GRANTEE_SETTLE_MS = 600
SCRIPT_SETTLE_MS = 800
REVOKE_WAIT_MS = 5000

MODES = ("list", "refresh", "grant")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or default


def split_tokens(values) -> Tuple[str, ...]:
    """Flatten comma- or space-separated CLI values into clean tokens."""
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    out = []
    for v in values:
        for part in str(v).replace(",", " ").split():
            part = part.strip()
            if part:
                out.append(part)
    return tuple(out)


@dataclass(frozen=True)
class RunConfig:
    mode: str = "grant"
    users: Tuple[str, ...] = ()
    scripts: Tuple[str, ...] = ()
    profile_url: Optional[str] = None
    manage_all: bool = False
    expiration: Expiration = field(default_factory=Expiration.none)
    headed: bool = False
    storage_state: Path = Path(STORAGE_STATE_FILE)
    profile_dir: Path = Path(PROFILE_DIR)
    selection_file: Path = Path(SELECTION_FILE)
    time_scale: float = 1.0

    def __post_init__(self):
        if self.mode not in MODES:
            raise ConfigError(f"Unknown mode {self.mode!r}; expected one of {', '.join(MODES)}")
        if self.time_scale < 0:
            raise ConfigError("time_scale must be >= 0")

    @property
    def auth_check_url(self) -> str:
        return self.profile_url or AUTH_CHECK_URL

    def grantee_requests(self):
        return [GranteeRequest(username=u, expiration=self.expiration) for u in self.users]

    @classmethod
    def build(
        cls,
        mode: str = "grant",
        users=None,
        scripts=None,
        profile_url: Optional[str] = None,
        manage_all: bool = False,
        no_expiry: bool = False,
        expires: Optional[str] = None,
        days: Optional[str] = None,
        headed: bool = False,
        storage_state: Optional[str] = None,
        selection_file: Optional[str] = None,
        time_scale: Optional[str] = None,
        today: Optional[date] = None,
    ) -> "RunConfig":
        """Build a config from raw invocation values plus environment overrides."""
        scale = time_scale if time_scale is not None else _env("ACCESS_MANAGER_TIME_SCALE", "1")
        try:
            scale = float(scale)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid time scale: {scale!r}")

        return cls(
            mode=mode,
            users=split_tokens(users),
            scripts=split_tokens(scripts),
            profile_url=profile_url or _env("ACCESS_MANAGER_PROFILE_URL"),
            manage_all=manage_all,
            expiration=resolve_expiration(no_expiry=no_expiry, expires=expires, days=days, today=today),
            headed=headed,
            storage_state=Path(storage_state or _env("ACCESS_MANAGER_STORAGE_STATE", STORAGE_STATE_FILE)),
            selection_file=Path(selection_file or _env("ACCESS_MANAGER_SELECTION_FILE", SELECTION_FILE)),
            time_scale=scale,
        )
