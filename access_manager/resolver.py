from typing import Iterable, List

from . import config
from .refs import ResourceRef, is_url, script_url_for
from .selection import SelectionStore


def resolve_targets(explicit_refs: Iterable[str], store: SelectionStore,
                    url_template: str = config.SCRIPT_URL_TEMPLATE) -> List[ResourceRef]:
    """
    Scripts to operate on.

    Explicit tokens (full URLs or bare ids) take precedence over the selection
    file; otherwise the enabled entries of the selection are used. An empty
    result is returned as-is and left to the caller to judge.

    Args:
        explicit_refs: tokens from --scripts; blanks are ignored.
        store: selection store used for id/url lookups and the enabled subset.
        url_template: canonical script URL for ids the selection does not know.

    Returns:
        ResourceRefs in token order, or in selection file order.
    """
    tokens = [t.strip() for t in explicit_refs if t and t.strip()]
    if tokens:
        known = store.lookup()
        targets = []
        for i, token in enumerate(tokens):
            if is_url(token):
                targets.append(ResourceRef.from_url(token, index=i))
            elif token in known:
                targets.append(known[token].to_ref(index=i))
            else:
                targets.append(ResourceRef.from_url(script_url_for(token, url_template), index=i))
        return targets

    return [entry.to_ref(index=i) for i, entry in enumerate(store.enabled())]
