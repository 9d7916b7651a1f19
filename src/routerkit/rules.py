"""Firewall rule document and template expansion.

The rule document is a static JSON file with four ordered sections:

* ``createAll`` - chains, jump rules and default policies (no placeholders)
* ``ingress``   - per-LAN rules using ``{{WAN}}``, ``{{LAN}}`` and ``{{GATEWAY_IP}}``
* ``egress``    - WAN-only rules, applied once
* ``deleteAll`` - chain teardown (no placeholders)

Templates are rule dictionaries whose string values may contain placeholder
tokens. Expanding a template substitutes every token and validates the
result as a :class:`~routerkit.iptables.FirewallRule`.
"""

import re
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ConfigDict, Field, ValidationError

from .base import RouterModel
from .errors import ConfigValidationError, RuleTemplateError
from .iptables import FirewallRule

WAN = "WAN"
LAN = "LAN"
GATEWAY_IP = "GATEWAY_IP"

PLACEHOLDERS = (WAN, LAN, GATEWAY_IP)

# Matches any {{NAME}} token; unknown names are reported rather than left behind.
_TOKEN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

_SAMPLE_VALUES = {WAN: "eth0", LAN: "eth1", GATEWAY_IP: "192.0.2.1"}


def substitute(text: str, substitutions: Mapping[str, str]) -> str:
    """
    Replace every placeholder token in ``text``.

    All tokens are replaced in a single pass, so the result does not depend
    on the order of ``substitutions`` and a substituted value is never
    scanned again.

    Raises:
        RuleTemplateError: If a token has no substitution value
    """
    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in substitutions:
            raise RuleTemplateError(f"No value for placeholder {{{{{name}}}}} in {text!r}")
        return str(substitutions[name])

    return _TOKEN.sub(replace, text)


def _substitute_value(value: Any, substitutions: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return substitute(value, substitutions)
    if isinstance(value, list):
        return [_substitute_value(v, substitutions) for v in value]
    if isinstance(value, dict):
        return {k: _substitute_value(v, substitutions) for k, v in value.items()}
    return value


def expand(templates: List[Dict[str, Any]], substitutions: Optional[Mapping[str, str]] = None) -> List[FirewallRule]:
    """
    Expand rule templates into concrete rules.

    Args:
        templates: Ordered rule templates
        substitutions: Placeholder name to value (e.g. {"WAN": "eth0"})

    Returns:
        Concrete rules in template order

    Raises:
        RuleTemplateError: On a missing placeholder value or an invalid rule
    """
    values = dict(substitutions or {})
    rules = []
    for index, template in enumerate(templates):
        data = _substitute_value(template, values)
        try:
            rules.append(FirewallRule.model_validate(data))
        except ValidationError as e:
            raise RuleTemplateError(f"Invalid rule template #{index} {template}: {e}") from e
    return rules


def ingress_substitutions(wan: str, lan: str, gateway_ip: str) -> Dict[str, str]:
    """Placeholder values for one LAN's ingress rules."""
    return {WAN: wan, LAN: lan, GATEWAY_IP: gateway_ip}


def egress_substitutions(wan: str) -> Dict[str, str]:
    """Placeholder values for the egress rules (WAN only)."""
    return {WAN: wan}


class RuleDocument(RouterModel):
    """The four ordered sections of the firewall rule set."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    version: int = 1
    create_all: List[Dict[str, Any]] = Field(default_factory=list, alias="createAll")
    ingress: List[Dict[str, Any]] = Field(default_factory=list)
    egress: List[Dict[str, Any]] = Field(default_factory=list)
    delete_all: List[Dict[str, Any]] = Field(default_factory=list, alias="deleteAll")

    def check(self) -> "RuleDocument":
        """
        Verify every section expands into valid rules.

        ``createAll`` and ``deleteAll`` must not use placeholders and
        ``egress`` may only use ``{{WAN}}``.

        Raises:
            RuleTemplateError: On the first invalid template
        """
        expand(self.create_all)
        expand(self.delete_all)
        expand(self.ingress, _SAMPLE_VALUES)
        expand(self.egress, egress_substitutions(_SAMPLE_VALUES[WAN]))
        return self

    def create_rules(self) -> List[FirewallRule]:
        return expand(self.create_all)

    def delete_rules(self) -> List[FirewallRule]:
        return expand(self.delete_all)

    def ingress_rules(self, wan: str, lan: str, gateway_ip: str) -> List[FirewallRule]:
        """Concrete ingress rules for one LAN."""
        return expand(self.ingress, ingress_substitutions(wan, lan, gateway_ip))

    def egress_rules(self, wan: str) -> List[FirewallRule]:
        """Concrete egress rules for the WAN."""
        return expand(self.egress, egress_substitutions(wan))


def load_rule_document(path: Optional[str] = None) -> RuleDocument:
    """
    Load and check a rule document.

    Args:
        path: JSON file to load; the packaged default rule set if None

    Returns:
        RuleDocument instance

    Raises:
        RuleTemplateError: If the document is malformed
    """
    try:
        if path is None:
            text = resources.files("routerkit").joinpath("json/firewall.json").read_text(encoding="utf-8")
            document = RuleDocument.from_json(text)
        else:
            document = RuleDocument.from_json_file(path)
    except RuleTemplateError:
        raise
    except ConfigValidationError as e:
        raise RuleTemplateError(f"Invalid rule document: {e}") from e
    return document.check()
