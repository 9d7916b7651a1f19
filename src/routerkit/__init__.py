"""routerkit - turn a Linux host with several interfaces into a router."""

__version__ = "0.1.0"

from .config import (  # noqa: E402
    AccessPointConfig,
    DhcpPoolConfig,
    FirewallSettings,
    LanConfig,
    NetplanSettings,
    RouterConfig,
    WanConfig,
    load_config,
)
from .connection import Connection, LocalConnection  # noqa: E402
from .errors import (  # noqa: E402
    AddressError,
    BackendError,
    ConfigConflictError,
    ConfigValidationError,
    DeploymentError,
    InvalidRangeError,
    RouterError,
    RuleTemplateError,
    UnsupportedPrefixError,
)
from .firewall import FirewallManager, FirewallSnapshot  # noqa: E402
from .iptables import FirewallRule, Iptables, canonicalize  # noqa: E402
from .router import AccessPointResult, DeploymentResult, Router  # noqa: E402
from .rules import RuleDocument, expand, load_rule_document, substitute  # noqa: E402
from .ssh import SSHConnection  # noqa: E402
from .topology import ResolvedLan, WanPlan, resolve, validate  # noqa: E402

__all__ = [
    "__version__",
    # Configuration
    "RouterConfig",
    "WanConfig",
    "LanConfig",
    "DhcpPoolConfig",
    "AccessPointConfig",
    "NetplanSettings",
    "FirewallSettings",
    "load_config",
    # Topology
    "ResolvedLan",
    "WanPlan",
    "resolve",
    "validate",
    # Firewall
    "FirewallRule",
    "FirewallSnapshot",
    "FirewallManager",
    "Iptables",
    "RuleDocument",
    "canonicalize",
    "expand",
    "substitute",
    "load_rule_document",
    # Deployment
    "Router",
    "DeploymentResult",
    "AccessPointResult",
    # Connections
    "Connection",
    "LocalConnection",
    "SSHConnection",
    # Errors
    "RouterError",
    "ConfigValidationError",
    "ConfigConflictError",
    "AddressError",
    "InvalidRangeError",
    "UnsupportedPrefixError",
    "RuleTemplateError",
    "BackendError",
    "DeploymentError",
]
