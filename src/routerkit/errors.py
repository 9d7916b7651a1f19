"""Error types raised by routerkit."""

from typing import Any, Dict, Optional


class RouterError(Exception):
    """Base class for all routerkit errors."""


class ConfigValidationError(RouterError, ValueError):
    """The router configuration describes an impossible topology."""


class ConfigConflictError(ConfigValidationError):
    """Two parts of the configuration claim the same interface or addresses."""


class AddressError(ConfigValidationError):
    """Address arithmetic on a block failed."""


class InvalidRangeError(AddressError):
    """A DHCP range is empty, inverted or outside its block."""


class UnsupportedPrefixError(AddressError):
    """An address increment would have to carry past the fourth octet."""


class RuleTemplateError(ConfigValidationError):
    """A firewall rule template could not be expanded."""


class BackendError(RouterError, RuntimeError):
    """An external backend (interfaces, DHCP, AP, sysctl, packet filter) failed."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        command: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.command = command
        self.detail = detail


class DeploymentError(BackendError):
    """One or more access points failed to start.

    Every access point was attempted; ``failures`` maps interface name to the
    error message of each one that failed.
    """

    def __init__(self, message: str, failures: Dict[str, str], result: Optional[Any] = None) -> None:
        super().__init__(message, backend="hostapd")
        self.failures = failures
        self.result = result
