#!/usr/bin/env python3
"""
Invite-only script access manager for TradingView.

Usage Examples:

First time (log in and save the session):
  access-manager save-session

Refresh script-selection.json from a profile (then set "enabled": true by hand):
  access-manager --refresh-invite-list --profile-url https://www.tradingview.com/u/<name>/#published-scripts

Grant access to the enabled scripts:
  access-manager --users alice bob --days 30
  access-manager --users alice,bob --expires 2026-12-31
  access-manager --users alice --no-expiry --scripts ABC123 https://www.tradingview.com/script/XYZ-slug/

List what would be targeted:
  access-manager --list-only --profile-url https://www.tradingview.com/u/<name>/
"""

import argparse
import sys

from .config import RunConfig
from .errors import ConfigError
from .orchestrator import run
from .session import interactive_login


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="access-manager",
        description="Grant or refresh invite-only access to published TradingView scripts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", nargs="?", default="run", choices=["run", "save-session"],
                        help="'save-session' opens a browser to log in and store the session state.")
    parser.add_argument("--list-only", action="store_true", help="Print the resolved or discovered scripts and exit.")
    parser.add_argument("--refresh-invite-list", action="store_true",
                        help="Discover invite-only scripts and merge them into the selection file.")
    parser.add_argument("--grant", action="store_true", help="Grant access (default mode).")
    parser.add_argument("--all", dest="manage_all", action="store_true",
                        help="Grant on every discovered script when nothing is selected.")
    parser.add_argument("--invite-only", action="store_true",
                        help="Accepted for compatibility; discovery always filters to invite-only scripts.")
    parser.add_argument("--users", nargs="+", action="extend", default=[],
                        help="Usernames to grant (comma- or space-separated).")
    parser.add_argument("--scripts", nargs="+", action="extend", default=[],
                        help="Script URLs or ids (comma- or space-separated); overrides the selection file.")
    parser.add_argument("--expires", metavar="YYYY-MM-DD", help="Expiration date for every grant.")
    parser.add_argument("--days", help="Expire grants this many days from today.")
    parser.add_argument("--no-expiry", action="store_true", help="Grant without an expiration date.")
    parser.add_argument("--profile-url", help="Profile page listing the published scripts.")
    parser.add_argument("--headed", "--show", dest="headed", action="store_true", help="Show the browser window.")
    parser.add_argument("--selection-file", help="Path to script-selection.json.")
    parser.add_argument("--storage-state", help="Path to the saved Playwright storage state (tv-storage.json).")
    parser.add_argument("--time-scale", help="Multiplier for fixed settle delays (e.g. 0.5).")
    return parser


def mode_from_args(args) -> str:
    if args.refresh_invite_list:
        return "refresh"
    if args.list_only:
        return "list"
    return "grant"


def config_from_args(args) -> RunConfig:
    return RunConfig.build(
        mode=mode_from_args(args),
        users=args.users,
        scripts=args.scripts,
        profile_url=args.profile_url,
        manage_all=args.manage_all,
        no_expiry=args.no_expiry,
        expires=args.expires,
        days=args.days,
        headed=args.headed,
        storage_state=args.storage_state,
        selection_file=args.selection_file,
        time_scale=args.time_scale,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = config_from_args(args)
    except ConfigError as e:
        print(f"🔴 {e}", file=sys.stderr)
        return 1

    if args.command == "save-session":
        print("🚀 Launching browser to save authentication state...")
        return 0 if interactive_login(cfg) else 1

    return run(cfg)


if __name__ == "__main__":
    sys.exit(main())
