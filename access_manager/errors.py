class AccessManagerError(Exception):
    """Base error for conditions with no local recovery path."""


class ConfigError(AccessManagerError):
    """Missing or invalid run input; reported before any remote interaction."""


class DiscoveryError(AccessManagerError):
    """No script cards appeared on the profile page."""


class SessionError(AccessManagerError):
    """The browser session could not be started or authenticated."""
