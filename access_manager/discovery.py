"""
Enumerate the invite-only scripts listed on a profile page.

The profile list is rendered lazily: more cards appear only after scrolling,
so discovery scrolls until the visible card count stops changing (bounded by
MAX_SCROLL_ROUNDS in case new cards keep streaming in).
"""

import sys
from typing import List

from . import config
from .errors import DiscoveryError
from .refs import ResourceRef, absolute_url
from .surface import Css, Text

CARD_TITLE = Css('a[data-qa-id="ui-lib-card-link-title"]')
SCRIPT_CARDS = [Css('article:has(a[data-qa-id="ui-lib-card-link-title"])')]
ACCESS_FILTER = [Css('button[aria-label="Script access type filter"]')]
INVITE_ONLY_OPTION = [
    Css('[role="option"]:has-text("Invite-only")'),
    Text("Invite-only"),
]


def apply_invite_only_filter(surface) -> bool:
    """Narrow the list to invite-only scripts; a missing filter is not an error."""
    applied = False
    access_filter = surface.locate(ACCESS_FILTER)
    if access_filter is not None:
        surface.click(access_filter)
        option = surface.locate(INVITE_ONLY_OPTION)
        if option is not None:
            surface.click(option)
            applied = True
        else:
            print("[discovery] ⚠️  'Invite-only' option not found; listing unfiltered", file=sys.stderr)
    else:
        print("[discovery] ⚠️  Access type filter not found; listing unfiltered", file=sys.stderr)

    surface.wait_for_network_idle()
    surface.pause(config.FILTER_SETTLE_MS)
    return applied


def load_all_cards(surface, max_rounds: int = config.MAX_SCROLL_ROUNDS) -> int:
    """Scroll until two consecutive counts match; returns the final count."""
    last_count = -1
    for _ in range(max_rounds):
        count = surface.count(SCRIPT_CARDS)
        if count == last_count:
            break
        last_count = count
        surface.scroll_page(config.SCROLL_STEP_PX)
        surface.pause(config.SCROLL_SETTLE_MS)
    return last_count


def extract_cards(surface, origin: str = config.ORIGIN) -> List[ResourceRef]:
    scripts = []
    for i, card in enumerate(surface.locate_all(SCRIPT_CARDS)):
        title_el = surface.locate(CARD_TITLE, scope=card)
        if title_el is None:
            continue
        title = surface.text(title_el)
        url = absolute_url(surface.attribute(title_el, "href") or "", origin)
        scripts.append(ResourceRef.from_url(url, title=title, index=i))
    return scripts


def discover_scripts(surface, profile_url: str,
                     max_rounds: int = config.MAX_SCROLL_ROUNDS,
                     timeout_ms: int = config.DISCOVERY_TIMEOUT_MS) -> List[ResourceRef]:
    """
    Open the profile, filter to invite-only and return every card in page order.

    Args:
        surface: Surface bound to the authenticated page.
        profile_url: profile page listing the published scripts.
        max_rounds: upper bound on scroll rounds while the list keeps growing.
        timeout_ms: how long to wait for the first script card.

    Returns:
        ResourceRefs with `index` set to their position on the page.

    Raises:
        DiscoveryError: no script card appeared within `timeout_ms`.
    """
    print(f"[discovery] Opening profile: {profile_url}")
    surface.goto(profile_url)
    surface.wait_for_network_idle()

    apply_invite_only_filter(surface)

    if not surface.wait_for(SCRIPT_CARDS, "visible", timeout=timeout_ms):
        raise DiscoveryError(f"No script cards appeared on {profile_url} within {timeout_ms} ms")

    load_all_cards(surface, max_rounds=max_rounds)
    scripts = extract_cards(surface)
    print(f"[discovery] Found {len(scripts)} script(s)")
    return scripts
