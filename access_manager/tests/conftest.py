"""
Scripted stand-ins for the browser.

FakeSurface implements the same find-then-act contract as
access_manager.surface.Surface, but over in-memory FakeElements, so the
discovery and grant flows run without Chromium. FakeProfilePage models the
lazily loaded script list; FakeAccessUI models the manage-access dialog and
the platform's access list behind it.
"""

import re

import pytest
from playwright.sync_api import TimeoutError as PwTimeout

from access_manager import discovery as d
from access_manager import grants as g
from access_manager.surface import Attr, Css, Text, as_list, is_selectors


class FakeElement:
    def __init__(self, name, text="", attrs=None, attached=True, visible=True, enabled=True,
                 checked=False, on_click=None, on_fill=None, on_check=None, fail_click=False,
                 children=None):
        self.name = name
        self.text = text
        self.attrs = dict(attrs or {})
        self.attached = attached
        self.visible = visible
        self.enabled = enabled
        self.checked = checked
        self.on_click = on_click
        self.on_fill = on_fill
        self.on_check = on_check
        self.fail_click = fail_click
        self.children = dict(children or {})
        self.value = ""
        self.clicks = 0

    @property
    def shown(self):
        return self.attached and self.visible

    def __repr__(self):
        return f"<FakeElement {self.name}>"


class FakeSurface:
    def __init__(self):
        self.url = "about:blank"
        self.redirects = {}
        self.visited = []
        self.actions = []
        self.pauses = []
        self.waits = []
        self.scrolls = 0

    # subclasses answer single selectors
    def find(self, selector, scope):
        return []

    def _matches(self, selectors, scope=None):
        for sel in as_list(selectors):
            found = [e for e in self.find(sel, scope) if e.attached]
            if found:
                return found
        return []

    def locate(self, selectors, scope=None):
        found = self._matches(selectors, scope)
        return found[0] if found else None

    def locate_all(self, selectors, scope=None):
        return self._matches(selectors, scope)

    def count(self, selectors, scope=None):
        return len(self._matches(selectors, scope))

    def click(self, handle, timeout=None):
        self.actions.append(("click", handle.name))
        if handle.fail_click:
            raise PwTimeout(f"Timeout {timeout}ms exceeded clicking {handle.name}")
        handle.clicks += 1
        if handle.on_click:
            handle.on_click()

    def hover(self, handle, timeout=None):
        self.actions.append(("hover", handle.name))

    def fill(self, handle, value, timeout=None):
        self.actions.append(("fill", handle.name, value))
        handle.value = value
        if handle.on_fill:
            handle.on_fill(value)

    def type(self, handle, value, timeout=None):
        self.fill(handle, value, timeout)

    def press(self, handle, key, timeout=None):
        self.actions.append(("press", handle.name, key))

    def text(self, handle):
        return handle.text.strip()

    def attribute(self, handle, name):
        return handle.attrs.get(name)

    def is_checked(self, handle):
        return handle.checked

    def set_checked(self, handle, checked, timeout=None):
        self.actions.append(("check" if checked else "uncheck", handle.name))
        handle.checked = checked
        if handle.on_check:
            handle.on_check()

    def is_enabled(self, handle):
        return handle.enabled

    def is_visible(self, target, timeout=0):
        handle = self.locate(target) if is_selectors(target) else target
        return bool(handle is not None and handle.shown)

    def scroll_into_view(self, handle, timeout=None):
        self.actions.append(("scroll_into_view", handle.name))

    def wait_for(self, target, state="visible", timeout=10_000):
        self.waits.append((state, timeout))
        if is_selectors(target):
            handle = self.locate(target)
            attached = handle is not None
            shown = attached and handle.visible
        else:
            attached = target.attached
            shown = target.shown
        return {
            "visible": shown,
            "hidden": not shown,
            "attached": attached,
            "detached": not attached,
        }[state]

    def pause(self, ms):
        self.pauses.append(ms)

    @property
    def current_url(self):
        return self.url

    def goto(self, url, timeout=None):
        self.visited.append(url)
        self.url = self.redirects.get(url, url)

    def wait_for_network_idle(self, timeout=None):
        pass

    def scroll_page(self, dy=2000):
        self.scrolls += 1


class FakeProfilePage(FakeSurface):
    """A profile page whose card list grows by `batch` cards per scroll."""

    def __init__(self, scripts, batch=None, stream=False, has_filter=True, has_option=True):
        super().__init__()
        self.cards = [self._card(i, title, href) for i, (title, href) in enumerate(scripts)]
        self.batch = batch
        self.stream = stream
        self.visible_count = batch if batch else len(self.cards)
        self.filter_open = False
        self.invite_only = False
        self.filter_button = FakeElement("access-filter", attached=has_filter, on_click=self._open_filter)
        self.option = FakeElement("invite-only-option", attached=has_option, on_click=self._pick_invite_only)

    def _card(self, i, title, href):
        title_el = FakeElement(f"title-{i}", text=f"  {title}\n", attrs={"href": href})
        return FakeElement(f"card-{i}", children={"title": title_el})

    def _open_filter(self):
        self.filter_open = True

    def _pick_invite_only(self):
        self.invite_only = True

    def find(self, selector, scope):
        if selector in d.SCRIPT_CARDS:
            return self.cards[:self.visible_count]
        if selector == d.CARD_TITLE and scope is not None:
            return [scope.children["title"]]
        if selector in d.ACCESS_FILTER:
            return [self.filter_button]
        if selector in d.INVITE_ONLY_OPTION and self.filter_open:
            return [self.option]
        return []

    def scroll_page(self, dy=2000):
        super().scroll_page(dy)
        if self.stream:
            n = len(self.cards)
            self.cards.append(self._card(n, f"Streamed {n}", f"/script/S{n}-streamed/"))
            self.visible_count = len(self.cards)
        elif self.batch:
            self.visible_count = min(len(self.cards), self.visible_count + self.batch)


def _row_name(row):
    return row.name[len("search-row-"):]


# (selector pattern, row filter) for the search-result row descriptors
SEARCH_ROW_MATCHERS = [
    (re.compile(r'^\[data-name="user-search-row"\]\[data-username="(.*)"\]$'),
     lambda row, name: row.attrs.get("data-username") == name),
    (re.compile(r'^\[data-name="user-search-row"\]:has\(:text-is\("(.*)"\)\)$'),
     lambda row, name: _row_name(row) == name),
    (re.compile(r'^\[data-name="user-search-row"\]:has-text\("(.*)"\)$'),
     lambda row, name: name.lower() in row.text.lower()),
]


class FakeAccessUI(FakeSurface):
    """
    A script page with its manage-access dialog.

    `grants` is the platform's access list: a list of {"username", "expiry",
    "row"} entries. Granting without revoking first would append a duplicate
    entry, just like the real list would show two rows.
    """

    def __init__(self, directory=(), grants=(), open_via="direct", menu_count=0, menu_index=0,
                 remove_style="icon", confirm_revoke=False, add_access_needed=False,
                 apply_closes=True, expiration_opens=True, initially_no_expiry=False,
                 checkbox_syncs=True, rows_have_username=True, escape_closes=True):
        super().__init__()
        self.directory = list(directory)
        self.rows_have_username = rows_have_username
        self.escape_closes = escape_closes
        self.remove_style = remove_style
        self.confirm_revoke = confirm_revoke
        self.add_access_needed = add_access_needed
        self.apply_closes = apply_closes
        self.expiration_opens = expiration_opens
        self.initially_no_expiry = initially_no_expiry

        self.tab = "add"
        self.search_text = ""
        self.pending_user = None
        self.pending_removal = None
        self.row_menu_open = False
        self.search_rows = {}

        self.manage_button = FakeElement("manage-access", attached=(open_via == "direct"), on_click=self._open_dialog)
        self.share_button = FakeElement("share", attached=(open_via == "share"), on_click=self._reveal_manage)
        self.menu_buttons = [
            FakeElement(f"menu-{i}", on_click=self._reveal_manage if (open_via == "menu" and i == menu_index) else None)
            for i in range(menu_count)
        ]

        self.dialog = FakeElement("manage-dialog", attached=False)
        self.add_tab = FakeElement("tab-add", on_click=lambda: self._set_tab("add"))
        self.granted_tab = FakeElement("tab-granted", on_click=lambda: self._set_tab("granted"))
        self.search_input = FakeElement("search", on_fill=self._on_search)
        self.close_button = FakeElement("close", on_click=self._close_dialog)
        self.row_revoke_item = FakeElement("row-menu-revoke", on_click=self._remove_menu_target)

        self.exp_dialog = FakeElement("expiration-dialog", attached=False)
        self.checkbox = FakeElement("no-expiry-checkbox", on_check=self._sync_date_input if checkbox_syncs else None)
        self.label = FakeElement("no-expiry-label", on_click=self._toggle_checkbox)
        self.date_container = FakeElement("date-container")
        self.date_input = FakeElement("date-input")
        self.apply_button = FakeElement("apply", on_click=self._apply)

        self.confirm_dialog = FakeElement("revoke-confirm", attached=False)
        self.confirm_button = FakeElement("confirm", on_click=self._confirm_removal)

        self.grants = []
        for username, expiry in grants:
            self._add_grant(username, expiry)

    # -------- platform state --------

    def active_grants(self, username):
        return [entry["expiry"] for entry in self.grants if entry["username"] == username]

    def _add_grant(self, username, expiry):
        entry = {"username": username, "expiry": expiry}
        children = {}
        if self.remove_style == "icon":
            children["remove"] = FakeElement(f"remove-{username}", on_click=lambda: self._request_removal(entry))
        elif self.remove_style == "labelled":
            children["revoke"] = FakeElement(f"revoke-{username}", on_click=lambda: self._request_removal(entry))
        entry["row"] = FakeElement(
            f"granted-{username}",
            text=username,
            attrs={"data-username": username},
            children=children,
            on_click=lambda: self._open_row_menu(entry),
        )
        self.grants.append(entry)

    def _request_removal(self, entry):
        if self.confirm_revoke:
            self.pending_removal = entry
            self.confirm_dialog.attached = True
        else:
            self._remove(entry)

    def _remove(self, entry):
        if entry in self.grants:
            self.grants.remove(entry)
        entry["row"].attached = False

    def _confirm_removal(self):
        self._remove(self.pending_removal)
        self.pending_removal = None
        self.confirm_dialog.attached = False

    def _open_row_menu(self, entry):
        if self.remove_style == "row":
            self.row_menu_open = True
            self.pending_removal = entry

    def _remove_menu_target(self):
        self.row_menu_open = False
        self._request_removal(self.pending_removal)

    # -------- dialog behaviour --------

    def _reveal_manage(self):
        self.manage_button.attached = True

    def _open_dialog(self):
        self.dialog.attached = True
        self.tab = "add"

    def _close_dialog(self):
        self.dialog.attached = False

    def _set_tab(self, tab):
        self.tab = tab

    def _on_search(self, value):
        self.search_text = value

    def _search_row(self, username):
        if username not in self.search_rows:
            add_access = FakeElement(f"add-access-{username}", on_click=lambda: self._open_expiration(username))
            self.search_rows[username] = FakeElement(
                f"search-row-{username}",
                text=f"{username} Add access",
                attrs={"data-username": username} if self.rows_have_username else {},
                children={"add-access": add_access},
                on_click=None if self.add_access_needed else (lambda: self._open_expiration(username)),
            )
        return self.search_rows[username]

    def _search_results(self):
        # remote search lists every directory name containing the query, in directory order
        if not self.dialog.attached or self.tab != "add" or not self.search_text:
            return []
        query = self.search_text.lower()
        return [self._search_row(name) for name in self.directory if query in name.lower()]

    def press(self, handle, key, timeout=None):
        super().press(handle, key, timeout)
        if handle is self.exp_dialog and key == "Escape" and self.escape_closes:
            self.exp_dialog.attached = False

    def _open_expiration(self, username):
        if not self.expiration_opens:
            return
        self.pending_user = username
        self.exp_dialog.attached = True
        self.checkbox.checked = self.initially_no_expiry
        self.date_input.value = ""
        self._sync_date_input()

    def _toggle_checkbox(self):
        self.checkbox.checked = not self.checkbox.checked
        self._sync_date_input()

    def _sync_date_input(self):
        self.date_input.enabled = not self.checkbox.checked

    def _apply(self):
        expiry = "" if self.checkbox.checked else self.date_input.value
        self._add_grant(self.pending_user, expiry)
        if self.apply_closes:
            self.exp_dialog.attached = False

    # -------- selector answers --------

    def _granted_rows(self, username):
        if not self.dialog.attached or self.tab != "granted":
            return []
        return [e["row"] for e in self.grants if e["username"] == username]

    def find(self, selector, scope):
        static = {
            g.MANAGE_ACCESS_BUTTON[0]: [self.manage_button],
            g.SHARE_BUTTON[0]: [self.share_button],
            g.MENU_BUTTONS[0]: self.menu_buttons,
            g.ACCESS_DIALOG[0]: [self.dialog],
            g.ADD_USERS_TAB[0]: [self.add_tab],
            g.ACCESS_GRANTED_TAB[0]: [self.granted_tab],
            g.SEARCH_INPUT[0]: [self.search_input],
            g.CLOSE_BUTTON[0]: [self.close_button],
            g.EXPIRATION_DIALOG[0]: [self.exp_dialog],
            g.NO_EXPIRY_CHECKBOX[0]: [self.checkbox],
            g.NO_EXPIRY_LABEL[0]: [self.label],
            g.DATE_INPUT[0]: [self.date_input],
            g.DATE_CONTAINER[0]: [self.date_container],
            g.APPLY_BUTTON[0]: [self.apply_button],
            g.REVOKE_CONFIRM_DIALOG[0]: [self.confirm_dialog],
            g.REVOKE_CONFIRM_BUTTON[0]: [self.confirm_button],
            g.DIALOG_REVOKE_CONTROLS[0]: [self.row_revoke_item] if self.row_menu_open else [],
        }
        if selector in static:
            return static[selector]

        if selector == g.REMOVE_ICON[0] and scope is not None:
            return [scope.children["remove"]] if "remove" in scope.children else []
        if selector in g.ROW_REVOKE_CONTROLS and scope is not None:
            return [scope.children["revoke"]] if selector == g.ROW_REVOKE_CONTROLS[0] and "revoke" in scope.children else []
        if selector in g.ADD_ACCESS and scope is not None:
            return [scope.children["add-access"]] if "add-access" in scope.children else []

        if isinstance(selector, Css):
            for pattern, keep in SEARCH_ROW_MATCHERS:
                m = pattern.match(selector.selector)
                if m:
                    return [row for row in self._search_results() if keep(row, m.group(1))]
        if isinstance(selector, Attr) and selector.name == "data-username":
            if self.tab == "granted":
                return self._granted_rows(selector.value)
            return [row for row in self._search_results() if row.attrs.get("data-username") == selector.value]
        if isinstance(selector, Text) and selector.exact:
            return self._granted_rows(selector.text)
        return []


class FakeSession:
    def __init__(self, surface):
        self.surface = surface
        self.started = 0
        self.closed = 0

    def start(self):
        self.started += 1
        return self.surface

    def close(self):
        self.closed += 1


@pytest.fixture
def storage_state(tmp_path):
    path = tmp_path / "tv-storage.json"
    path.write_text('{"cookies": [], "origins": []}', encoding="utf-8")
    return path


@pytest.fixture
def selection_path(tmp_path):
    return tmp_path / "script-selection.json"
