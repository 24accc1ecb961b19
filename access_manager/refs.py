import re
from dataclasses import dataclass
from typing import Tuple
from urllib.parse import urljoin, urlparse

from . import config

SCRIPT_PATH_RE = re.compile(r"/script/([^/]+)/")
URL_RE = re.compile(r"^https?://", re.I)


@dataclass(frozen=True)
class ResourceRef:
    """A published script as seen on the platform."""
    id: str = ""
    slug: str = ""
    title: str = ""
    url: str = ""
    index: int = -1

    @property
    def key(self) -> str:
        return self.id or self.url

    @classmethod
    def from_url(cls, url: str, title: str = "", index: int = -1) -> "ResourceRef":
        script_id, slug = parse_script_ref(url)
        return cls(id=script_id, slug=slug, title=title, url=url, index=index)


def parse_script_ref(url: str) -> Tuple[str, str]:
    """
    Extract (id, slug) from a script URL.

    https://host/script/ABC123-my-slug/ -> ("ABC123", "my-slug")
    https://host/script/XYZ/            -> ("XYZ", "")
    anything unparseable                -> ("", "")
    """
    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return "", ""
        m = SCRIPT_PATH_RE.search(parsed.path)
    except (TypeError, ValueError, AttributeError):
        return "", ""
    if not m:
        return "", ""

    token = m.group(1)
    dash = token.find("-")
    if dash > 0:
        return token[:dash], token[dash + 1:]
    return token, ""


def is_url(token: str) -> bool:
    return bool(URL_RE.match(token or ""))


def absolute_url(href: str, origin: str = config.ORIGIN) -> str:
    href = (href or "").strip()
    if href.startswith("/"):
        return urljoin(origin, href)
    return href


def script_url_for(script_id: str, template: str = config.SCRIPT_URL_TEMPLATE) -> str:
    return template.format(id=script_id)


def is_login_page_url(url: str) -> bool:
    try:
        return config.SIGNIN_PATH in urlparse(url).path
    except (TypeError, ValueError, AttributeError):
        return False
