"""
Control surface adapter over a Playwright page.

Every UI lookup is an ordered sequence of locator descriptors. The first
descriptor that matches at least one element wins; callers never branch on
which one it was. Absence is reported as None / False, never raised, so the
higher layers decide what is fatal.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from playwright.sync_api import Error as PwError, Locator, Page, TimeoutError as PwTimeout

from . import config

DEFAULT_ACTION_TIMEOUT_MS = 5000
WAIT_STATES = ("visible", "hidden", "attached", "detached")


class Selector:
    """A single way of finding an element; variants differ only in build()."""

    def build(self, root):
        raise NotImplementedError


@dataclass(frozen=True)
class Css(Selector):
    selector: str

    def build(self, root):
        return root.locator(self.selector)

    def __str__(self):
        return self.selector


@dataclass(frozen=True)
class Text(Selector):
    text: str
    exact: bool = False

    def build(self, root):
        return root.get_by_text(self.text, exact=self.exact)

    def __str__(self):
        return f"text={self.text!r}" + (" (exact)" if self.exact else "")


@dataclass(frozen=True)
class Role(Selector):
    role: str
    name: Optional[str] = None
    exact: bool = False

    def build(self, root):
        if self.name is None:
            return root.get_by_role(self.role)
        return root.get_by_role(self.role, name=self.name, exact=self.exact)

    def __str__(self):
        return f"role={self.role}[name={self.name!r}]"


@dataclass(frozen=True)
class Attr(Selector):
    name: str
    value: str

    @property
    def css(self) -> str:
        escaped = self.value.replace("\\", "\\\\").replace('"', '\\"')
        return f'[{self.name}="{escaped}"]'

    def build(self, root):
        return root.locator(self.css)

    def __str__(self):
        return self.css


Selectors = Union[Selector, Sequence[Selector]]


def is_selectors(target) -> bool:
    return isinstance(target, (Selector, list, tuple))


def as_list(selectors: Selectors) -> List[Selector]:
    if isinstance(selectors, Selector):
        return [selectors]
    return list(selectors)


class Surface:
    """Find-then-act wrapper around one Playwright page."""

    def __init__(self, page: Page, time_scale: float = 1.0,
                 action_timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS):
        self.page = page
        self.time_scale = time_scale
        self.action_timeout_ms = action_timeout_ms

    # -------- lookup --------

    def _root(self, scope):
        return scope if scope is not None else self.page

    def _first_match(self, selectors: Selectors, scope=None):
        root = self._root(scope)
        for sel in as_list(selectors):
            try:
                loc = sel.build(root)
                n = loc.count()
            except PwError:
                continue
            if n:
                return loc, n
        return None, 0

    def locate(self, selectors: Selectors, scope=None) -> Optional[Locator]:
        loc, _ = self._first_match(selectors, scope)
        return loc.first if loc is not None else None

    def locate_all(self, selectors: Selectors, scope=None) -> List[Locator]:
        loc, n = self._first_match(selectors, scope)
        if loc is None:
            return []
        return [loc.nth(i) for i in range(n)]

    def count(self, selectors: Selectors, scope=None) -> int:
        return self._first_match(selectors, scope)[1]

    # -------- actions --------

    def _timeout(self, timeout):
        return self.action_timeout_ms if timeout is None else timeout

    def click(self, handle: Locator, timeout: Optional[int] = None):
        handle.click(timeout=self._timeout(timeout))

    def hover(self, handle: Locator, timeout: Optional[int] = None):
        handle.hover(timeout=self._timeout(timeout))

    def fill(self, handle: Locator, value: str, timeout: Optional[int] = None):
        handle.fill(value, timeout=self._timeout(timeout))

    def type(self, handle: Locator, value: str, timeout: Optional[int] = None):
        handle.press_sequentially(value, timeout=self._timeout(timeout))

    def press(self, handle: Locator, key: str, timeout: Optional[int] = None):
        handle.press(key, timeout=self._timeout(timeout))

    def text(self, handle: Locator) -> str:
        return (handle.text_content(timeout=self.action_timeout_ms) or "").strip()

    def attribute(self, handle: Locator, name: str) -> Optional[str]:
        return handle.get_attribute(name, timeout=self.action_timeout_ms)

    def is_checked(self, handle: Locator) -> bool:
        return handle.is_checked(timeout=self.action_timeout_ms)

    def set_checked(self, handle: Locator, checked: bool, timeout: Optional[int] = None):
        handle.set_checked(checked, timeout=self._timeout(timeout))

    def is_enabled(self, handle: Locator) -> bool:
        return handle.is_enabled(timeout=self.action_timeout_ms)

    def is_visible(self, target, timeout: int = 0) -> bool:
        if timeout:
            return self.wait_for(target, "visible", timeout)
        handle = self.locate(target) if is_selectors(target) else target
        return bool(handle is not None and handle.is_visible())

    def scroll_into_view(self, handle: Locator, timeout: Optional[int] = None):
        handle.scroll_into_view_if_needed(timeout=self._timeout(timeout))

    # -------- waiting --------

    def _wait_target(self, target):
        if not is_selectors(target):
            return target
        sels = as_list(target)
        root = self.page
        combined = sels[0].build(root)
        for sel in sels[1:]:
            combined = combined.or_(sel.build(root))
        return combined.first

    def wait_for(self, target, state: str = "visible", timeout: int = config.DIALOG_TIMEOUT_MS) -> bool:
        """Wait for a handle or selector list to reach `state`; False on timeout."""
        if state not in WAIT_STATES:
            raise ValueError(f"Unknown wait state: {state}")
        try:
            self._wait_target(target).wait_for(state=state, timeout=timeout)
            return True
        except PwTimeout:
            return False

    def pause(self, ms: int):
        """Fixed settle delay for UI updates that expose no completion signal."""
        scaled = ms * self.time_scale
        if scaled > 0:
            self.page.wait_for_timeout(scaled)

    # -------- page --------

    @property
    def current_url(self) -> str:
        return self.page.url

    def goto(self, url: str, timeout: int = config.NAVIGATION_TIMEOUT_MS):
        self.page.goto(url, wait_until="domcontentloaded", timeout=timeout)

    def wait_for_network_idle(self, timeout: int = config.NETWORK_IDLE_TIMEOUT_MS):
        try:
            self.page.wait_for_load_state("networkidle", timeout=timeout)
        except PwTimeout:
            # Some pages never reach true network idle; move on.
            pass

    def scroll_page(self, dy: int = config.SCROLL_STEP_PX):
        self.page.mouse.wheel(0, dy)
