from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from .errors import ConfigError

DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class Expiration:
    mode: str = "none"
    value: Optional[date] = None

    @classmethod
    def none(cls) -> "Expiration":
        return cls("none", None)

    @classmethod
    def on(cls, value: date) -> "Expiration":
        return cls("date", value)

    @property
    def wants_no_expiry(self) -> bool:
        return self.mode == "none" or self.value is None

    def as_input(self) -> str:
        """Value typed into the dialog's date field (YYYY-MM-DD)."""
        return self.value.strftime(DATE_FORMAT) if self.value else ""

    def __str__(self):
        return "no expiration" if self.wants_no_expiry else f"expires {self.as_input()}"


@dataclass(frozen=True)
class GranteeRequest:
    username: str
    expiration: Expiration = Expiration.none()


def parse_date(text: str) -> date:
    try:
        return date.fromisoformat(text.strip())
    except (AttributeError, ValueError):
        raise ConfigError(f"Invalid expiration date {text!r}; expected YYYY-MM-DD")


def resolve_expiration(
    no_expiry: bool = False,
    expires: Optional[str] = None,
    days=None,
    today: Optional[date] = None,
) -> Expiration:
    """
    Decide the expiration applied to every grantee of a run.

    No expiration when explicitly requested or when neither a date nor a day
    offset was given. An explicit date wins over a day offset; a day offset is
    counted from `today` (defaults to the local date).
    """
    if no_expiry or (not expires and days in (None, "")):
        return Expiration.none()

    if expires:
        return Expiration.on(parse_date(expires))

    try:
        offset = int(days)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid --days value {days!r}; expected an integer")

    base = today or date.today()
    return Expiration.on(base + timedelta(days=offset))
