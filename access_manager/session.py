"""
Browser session provider.

BrowserSession starts Chromium with a saved Playwright storage state
(tv-storage.json). interactive_login() opens a visible persistent profile so
a human can sign in, then writes a fresh storage state.

First time:
    access-manager save-session
"""

import sys
from pathlib import Path
from typing import Optional

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Page,
    TimeoutError as PwTimeout,
    sync_playwright,
)

from . import config
from .errors import SessionError
from .refs import is_login_page_url
from .surface import Surface


class BrowserSession:
    """One Chromium browser/context/page loaded with the saved login state."""

    def __init__(self, run_config):
        self.config = run_config
        self.storage_state_file = Path(run_config.storage_state)
        self.headless = not run_config.headed
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.surface: Optional[Surface] = None

    def start(self) -> Surface:
        if not self.storage_state_file.exists():
            raise SessionError(f"Session file not found at {self.storage_state_file}")

        self.playwright = sync_playwright().start()
        try:
            self.browser = self.playwright.chromium.launch(headless=self.headless)
            self.context = self.browser.new_context(storage_state=str(self.storage_state_file))
            self.page = self.context.new_page()
        except BaseException:
            self.close()
            raise
        self.surface = Surface(self.page, time_scale=self.config.time_scale)
        print(f"[session] 🔐 Browser started with storage state: {self.storage_state_file}")
        return self.surface

    def close(self):
        try:
            if self.context:
                self.context.close()
            if self.browser:
                self.browser.close()
        finally:
            if self.playwright:
                self.playwright.stop()
            self.playwright = None
            self.browser = None
            self.context = None
            self.page = None
            self.surface = None


def interactive_login(run_config, timeout_ms: int = config.LOGIN_TIMEOUT_MS) -> bool:
    """
    Open a visible browser on the sign-in page and save the storage state
    once the user has logged in (detected by leaving the sign-in URL).
    """
    state_path = Path(run_config.storage_state)
    profile_dir = Path(run_config.profile_dir)
    profile_dir.mkdir(parents=True, exist_ok=True)

    with sync_playwright() as p:
        context = p.chromium.launch_persistent_context(
            user_data_dir=str(profile_dir),
            headless=False,
            viewport=config.VIEWPORT,
            args=config.LOGIN_ARGS,
        )
        try:
            page = context.new_page()
            page.goto(config.SIGNIN_URL, wait_until="domcontentloaded")
            print("[session] 🟡 Login required. Please complete login in the visible window...")
            try:
                page.wait_for_url(lambda url: not is_login_page_url(url), timeout=timeout_ms)
            except PwTimeout:
                print("[session] 🔴 Login not detected within time limit. You can rerun later.", file=sys.stderr)
                return False

            state_path.parent.mkdir(parents=True, exist_ok=True)
            context.storage_state(path=str(state_path))
            print(f"[session] ✅ Saved new auth state to {state_path}")
            return True
        finally:
            context.close()
