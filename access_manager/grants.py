"""
Manage-access dialog automation for one script.

Per script:   open dialog -> [per grantee] revoke check -> search ->
              set expiration -> apply -> close dialog

Every grantee is revoked first (if present) and granted again, so repeated
runs converge to exactly one grant carrying the requested expiration. The
platform's own access list is the source of truth; timeouts on confirmation
and hide waits are treated as "it happened" and a later run corrects any
real failure.
"""

import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from playwright.sync_api import Error as PwError

from . import config
from .errors import AccessManagerError
from .expiration import Expiration, GranteeRequest
from .surface import Attr, Css, Text

GRANTED = "granted"
NOT_FOUND = "not_found"
SKIPPED = "skipped"
FAILED = "failed"

# =========================
# Selectors
# =========================

MANAGE_ACCESS_BUTTON = [Css('button:has-text("Manage access")')]
SHARE_BUTTON = [Css('button[aria-label*="Share"]')]
MENU_BUTTONS = [Css('button[aria-haspopup="menu"], button[aria-expanded][aria-controls], button[aria-label*="More" i]')]

ACCESS_DIALOG = [Css('[data-dialog-name="Manage invite-only access to this script"]')]
ADD_USERS_TAB = [Css('button[id="Add new users"]'), Css('button:has-text("Add new users")')]
ACCESS_GRANTED_TAB = [Css('button[id="Access granted"]'), Css('button:has-text("Access granted")')]
SEARCH_INPUT = [Css('input[placeholder*="Search for a user"]')]

REMOVE_ICON = [Css('[data-name="manage-access-dialog-item-remove-button"]')]
ROW_REVOKE_CONTROLS = [
    Css(':is(button, [role="button"]):has-text("Revoke")'),
    Css(':is(button, [role="button"]):has-text("Remove")'),
    Text("Revoke access"),
]
DIALOG_REVOKE_CONTROLS = [
    Css(':is(button, [role="button"]):has-text("Revoke"), :is(button, [role="button"]):has-text("Remove")'),
]
REVOKE_CONFIRM_DIALOG = [
    Css('[data-dialog-name*="Revoke" i], [data-dialog-name*="Remove" i], [data-dialog-name*="Delete" i]'),
]
REVOKE_CONFIRM_BUTTON = [
    Css(':is(button, [role="button"]):has-text("Revoke"), '
        ':is(button, [role="button"]):has-text("Remove"), '
        ':is(button, [role="button"]):has-text("Confirm")'),
]

ADD_ACCESS = [Text("Add access", exact=True)]
EXPIRATION_DIALOG = [Css('[data-dialog-name="Set expiration date"]')]
NO_EXPIRY_CHECKBOX = [Css('input[type="checkbox"]')]
NO_EXPIRY_LABEL = [Text("No expiration date")]
DATE_INPUT = [Css('input[placeholder="YYYY-MM-DD"][data-qa-id="ui-lib-Input-input"]')]
DATE_CONTAINER = [Css('[data-qa-id="ui-lib-Input"]')]
APPLY_BUTTON = [Css('[data-name="submit-button"]'), Css('button:has-text("Apply")')]
CLOSE_BUTTON = [Css('[data-qa-id="close"]')]


def _quoted(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def granted_row(username: str):
    return [Attr("data-username", username), Text(username, exact=True)]


def search_result_row(username: str):
    # :has-text is a case-insensitive substring match ("bob" also hits "bobby"), so it goes last
    name = _quoted(username)
    return [
        Css(f'[data-name="user-search-row"][data-username="{name}"]'),
        Attr("data-username", username),
        Css(f'[data-name="user-search-row"]:has(:text-is("{name}"))'),
        Css(f'[data-name="user-search-row"]:has-text("{name}")'),
    ]


@dataclass
class GrantOutcome:
    username: str
    status: str
    reason: str = ""

    def __str__(self):
        return f"{self.username}: {self.status}" + (f" ({self.reason})" if self.reason else "")


class GrantStepError(AccessManagerError):
    """A grant step for one grantee cannot continue."""


# =========================
# Opening the dialog
# =========================

def _open_direct(surface) -> bool:
    button = surface.locate(MANAGE_ACCESS_BUTTON)
    if button is None:
        return False
    if not surface.wait_for(button, "visible", timeout=1000):
        return False
    surface.click(button)
    return True


def _open_via_share(surface) -> bool:
    share = surface.locate(SHARE_BUTTON)
    if share is None:
        return False
    if not surface.wait_for(share, "visible", timeout=2000):
        return False
    surface.click(share)
    if not surface.wait_for(MANAGE_ACCESS_BUTTON, "visible", timeout=3000):
        return False
    manage = surface.locate(MANAGE_ACCESS_BUTTON)
    if manage is None:
        return False
    surface.click(manage)
    return True


def _open_via_menu_scan(surface, limit: int = config.MENU_SCAN_LIMIT) -> bool:
    # First menu that reveals "Manage access" wins.
    for button in surface.locate_all(MENU_BUTTONS)[:limit]:
        try:
            surface.scroll_into_view(button)
            surface.click(button, timeout=1500)
            manage = surface.locate(MANAGE_ACCESS_BUTTON)
            if manage is not None and surface.wait_for(manage, "visible", timeout=2000):
                surface.click(manage)
                return True
        except PwError:
            continue
    return False


OPEN_STRATEGIES = (
    ("manage access button", _open_direct),
    ("share menu", _open_via_share),
    ("menu scan", _open_via_menu_scan),
)


def open_manage_access(surface) -> bool:
    """
    Try each known way of opening the manage-access dialog, in order.

    Returns:
        True once one strategy clicked a "Manage access" control, False when
        none of them found one.
    """
    for name, strategy in OPEN_STRATEGIES:
        try:
            if strategy(surface):
                print(f"[grant] Opened Manage access via {name}")
                return True
        except PwError:
            continue
    return False


# =========================
# Dialog state machine
# =========================

class AccessDialog:
    """Drives the 'Manage invite-only access' dialog of the current script page."""

    def __init__(self, surface):
        self.surface = surface
        self.dialog = None

    def _click_quietly(self, handle, timeout: Optional[int] = None) -> bool:
        if handle is None:
            return False
        try:
            self.surface.click(handle, timeout=timeout)
            return True
        except PwError:
            return False

    def _switch_tab(self, tab):
        handle = self.surface.locate(tab, scope=self.dialog)
        if handle is not None:
            self.surface.click(handle)

    def wait_until_open(self) -> bool:
        s = self.surface
        if not s.wait_for(ACCESS_DIALOG, "visible", timeout=config.DIALOG_TIMEOUT_MS):
            return False
        self.dialog = s.locate(ACCESS_DIALOG)
        return self.dialog is not None

    # -------- revoke check --------

    def _click_remove(self, row) -> Optional[str]:
        s = self.surface
        icon = s.locate(REMOVE_ICON, scope=row)
        if icon is not None:
            try:
                s.hover(icon, timeout=800)
            except PwError:
                pass
            s.click(icon, timeout=1500)
            return "remove button"

        control = s.locate(ROW_REVOKE_CONTROLS, scope=row)
        if control is not None:
            s.click(control, timeout=1500)
            return "revoke control"

        # Open the row to reveal its actions
        try:
            s.hover(row, timeout=800)
        except PwError:
            pass
        self._click_quietly(row, timeout=800)
        action = s.locate(DIALOG_REVOKE_CONTROLS, scope=self.dialog)
        if action is not None:
            s.click(action, timeout=800)
            return "row actions"
        return None

    def _confirm_revoke(self) -> bool:
        s = self.surface
        confirm = s.locate(REVOKE_CONFIRM_DIALOG)
        if confirm is None:
            return False
        button = s.locate(REVOKE_CONFIRM_BUTTON, scope=confirm)
        if button is not None:
            s.click(button)
        s.wait_for(confirm, "hidden", timeout=config.REVOKE_WAIT_MS)
        return True

    def revoke_if_present(self, username: str) -> bool:
        """Remove an existing grant for `username`; always ends on the add-users tab."""
        s = self.surface
        self._switch_tab(ACCESS_GRANTED_TAB)
        s.pause(config.TAB_SETTLE_MS)

        revoked = False
        row = s.locate(granted_row(username), scope=self.dialog)
        if row is not None:
            try:
                self._click_remove(row)
            except PwError as e:
                print(f"[grant] ⚠️  Remove control for {username} did not respond: {e}", file=sys.stderr)
            self._confirm_revoke()
            s.wait_for(row, "detached", timeout=config.REVOKE_WAIT_MS)
            print(f"[grant] Revoked existing access for {username}.")
            revoked = True

        self._switch_tab(ADD_USERS_TAB)
        s.pause(config.TAB_RETURN_SETTLE_MS)
        return revoked

    # -------- search --------

    def search(self, username: str):
        s = self.surface
        box = s.locate(SEARCH_INPUT, scope=self.dialog)
        if box is None:
            raise GrantStepError("user search box not found")
        s.fill(box, username)
        s.pause(config.SEARCH_SETTLE_MS)
        return s.locate(search_result_row(username))

    # -------- expiration --------

    def open_expiration_dialog(self, row):
        s = self.surface
        s.click(row)
        if not s.is_visible(EXPIRATION_DIALOG, timeout=800):
            add_access = s.locate(ADD_ACCESS, scope=row)
            if add_access is not None:
                s.click(add_access)
        if not s.wait_for(EXPIRATION_DIALOG, "visible", timeout=config.DIALOG_TIMEOUT_MS):
            raise GrantStepError("expiration dialog did not open")
        return s.locate(EXPIRATION_DIALOG)

    def _set_no_expiry(self, dialog, checked: bool):
        s = self.surface
        checkbox = s.locate(NO_EXPIRY_CHECKBOX, scope=dialog)
        label = s.locate(NO_EXPIRY_LABEL, scope=dialog)
        if checkbox is not None:
            try:
                current = s.is_checked(checkbox)
            except PwError:
                current = False
            if current != checked:
                try:
                    s.set_checked(checkbox, checked)
                except PwError:
                    self._click_quietly(label)
        else:
            self._click_quietly(label)
        s.pause(config.CHECKBOX_SETTLE_MS)

    def _date_input_ready(self, dialog) -> bool:
        date_input = self.surface.locate(DATE_INPUT, scope=dialog)
        if date_input is None:
            return False
        try:
            return self.surface.is_enabled(date_input)
        except PwError:
            return True

    def _fill_date(self, dialog, value: str):
        s = self.surface
        for _ in range(config.DATE_INPUT_POLLS):
            if self._date_input_ready(dialog):
                break
            # Toggle the label twice so the checkbox state propagates to the input
            label = s.locate(NO_EXPIRY_LABEL, scope=dialog)
            self._click_quietly(label)
            self._click_quietly(label)
            s.pause(config.DATE_INPUT_POLL_MS)

        self._click_quietly(s.locate(DATE_CONTAINER, scope=dialog), timeout=1000)
        date_input = s.locate(DATE_INPUT, scope=dialog)
        if date_input is None:
            raise GrantStepError("expiration date input not found")
        self._click_quietly(date_input, timeout=1000)
        try:
            s.press(date_input, "Control+A")
        except PwError:
            pass
        try:
            s.fill(date_input, value)
        except PwError:
            s.type(date_input, value)

    def set_expiration(self, dialog, expiration: Expiration):
        if expiration.wants_no_expiry:
            self._set_no_expiry(dialog, True)
            return
        self._set_no_expiry(dialog, False)
        self._fill_date(dialog, expiration.as_input())

    # -------- confirm --------

    def apply(self, dialog):
        s = self.surface
        button = s.locate(APPLY_BUTTON, scope=dialog)
        if button is None:
            raise GrantStepError("apply button not found")
        s.click(button)
        if not s.wait_for(dialog, "hidden", timeout=config.DIALOG_TIMEOUT_MS):
            print("[grant] ⚠️  Expiration dialog still open after Apply; assuming applied", file=sys.stderr)

    def grant(self, request: GranteeRequest) -> GrantOutcome:
        username = request.username
        self.revoke_if_present(username)

        row = self.search(username)
        if row is None:
            print(f"[grant] ⚠️  User \"{username}\" not found in search results. Skipping.", file=sys.stderr)
            return GrantOutcome(username, NOT_FOUND)

        dialog = self.open_expiration_dialog(row)
        self.set_expiration(dialog, request.expiration)
        self.apply(dialog)
        print(f"[grant] ✅ Access granted to {username} ({request.expiration}).")
        return GrantOutcome(username, GRANTED)

    def dismiss_expiration_dialog(self):
        """
        Close an expiration dialog left open by a failed grantee.

        The dialog is modal; while it is up every click on the manage-access
        dialog behind it waits out its full timeout.

        Raises:
            GrantStepError: the dialog is still open after Escape.
        """
        s = self.surface
        dialog = s.locate(EXPIRATION_DIALOG)
        if dialog is None:
            return
        s.press(dialog, "Escape")
        if not s.wait_for(dialog, "hidden", timeout=config.DIALOG_TIMEOUT_MS):
            raise GrantStepError("expiration dialog could not be dismissed")

    def close(self):
        s = self.surface
        button = s.locate(CLOSE_BUTTON, scope=self.dialog)
        if button is not None:
            s.click(button)
        if self.dialog is not None:
            s.wait_for(self.dialog, "hidden", timeout=config.DIALOG_TIMEOUT_MS)

    def grant_all(self, requests: Sequence[GranteeRequest]) -> List[GrantOutcome]:
        if not self.wait_until_open():
            return [GrantOutcome(r.username, SKIPPED, "manage access dialog did not appear") for r in requests]

        self._switch_tab(ADD_USERS_TAB)
        outcomes = []
        for request in requests:
            print(f"[grant] --- Processing user: {request.username} ---")
            try:
                outcomes.append(self.grant(request))
            except (GrantStepError, PwError) as e:
                print(f"[grant] ❌ {request.username}: {e}", file=sys.stderr)
                outcomes.append(GrantOutcome(request.username, FAILED, str(e)))
                self.dismiss_expiration_dialog()
            self.surface.pause(config.GRANTEE_SETTLE_MS)

        self.close()
        return outcomes


def grant_all(surface, requests: Sequence[GranteeRequest]) -> List[GrantOutcome]:
    return AccessDialog(surface).grant_all(requests)


def grant_script_access(surface, script, requests: Sequence[GranteeRequest]) -> List[GrantOutcome]:
    """
    Open a script page and apply every grantee request to it.

    Args:
        surface: Surface bound to the authenticated page.
        script: ResourceRef of the target script; its url is navigated to.
        requests: one GranteeRequest per user, in processing order.

    Returns:
        One GrantOutcome per request. Every request is `skipped` when the
        script has no URL or the manage-access dialog cannot be opened.
    """
    if not script.url:
        print(f"[grant] ⚠️  Skipping script without URL: {script.title}", file=sys.stderr)
        return [GrantOutcome(r.username, SKIPPED, "script has no URL") for r in requests]

    surface.goto(script.url)
    surface.wait_for_network_idle()
    if not open_manage_access(surface):
        print("[grant] ⚠️  Could not open Manage access from script page via known controls.", file=sys.stderr)
        return [GrantOutcome(r.username, SKIPPED, "manage access not available") for r in requests]

    return grant_all(surface, requests)
