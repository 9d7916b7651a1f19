"""Firewall state manager: idempotent chain setup on top of iptables."""

import logging
from dataclasses import dataclass, field
from typing import List, Set

from .errors import BackendError
from .iptables import FirewallRule, Iptables, canonicalize
from .rules import RuleDocument
from .topology import ResolvedLan

logger = logging.getLogger(__name__)

INGRESS_CHAIN = "ROUTER-INGRESS"
FORWARD_CHAIN = "ROUTER-FORWARD"
EGRESS_CHAIN = "ROUTER-EGRESS"


@dataclass
class FirewallSnapshot:
    """Canonical rules present in each table at the start of a pass."""

    filter: Set[str] = field(default_factory=set)
    nat: Set[str] = field(default_factory=set)

    def _table(self, table: str) -> Set[str]:
        return self.nat if table == "nat" else self.filter

    def contains(self, rule: FirewallRule) -> bool:
        return rule.canonical() in self._table(rule.table)

    def add(self, rule: FirewallRule) -> None:
        """Record a rule applied during this pass."""
        rules = self._table(rule.table)
        if rule.op == "policy":
            # A chain has a single policy; drop the one being replaced.
            prefix = f"-P {rule.chain} "
            for existing in [r for r in rules if r.startswith(prefix)]:
                rules.discard(existing)
        rules.add(rule.canonical())


class FirewallManager:
    """
    Installs and removes the router's chains and rules.

    Chains managed: ``ROUTER-INGRESS`` (nat), ``ROUTER-FORWARD`` (filter) and
    ``ROUTER-EGRESS`` (nat). Creating the chains is idempotent: rules already
    present in the packet filter are skipped. Flushing and the per-LAN rules
    are applied unconditionally, so a full pass always ends in the same state.
    """

    def __init__(self, iptables: Iptables, rules: RuleDocument):
        """
        Initialize the manager.

        Args:
            iptables: Packet filter backend
            rules: Rule document providing the four rule sections
        """
        self.iptables = iptables
        self.rules = rules

    def snapshot(self) -> FirewallSnapshot:
        """
        Read the current rules of the filter and nat tables.

        Raises:
            BackendError: If a table cannot be listed
        """
        return FirewallSnapshot(
            filter={canonicalize(line) for line in self.iptables.list_rules("filter")},
            nat={canonicalize(line) for line in self.iptables.list_rules("nat")},
        )

    def apply_unconditional(self, rule: FirewallRule) -> None:
        """
        Apply a rule without checking whether it exists.

        Raises:
            BackendError: If the packet filter rejects the rule
        """
        try:
            self.iptables.run(rule)
        except BackendError as e:
            logger.error("%s", e)
            raise

    def apply_idempotent(self, rule: FirewallRule, snapshot: FirewallSnapshot) -> bool:
        """
        Apply a rule unless the snapshot already holds it.

        Args:
            rule: Rule to apply
            snapshot: State of the current pass; updated when the rule is applied

        Returns:
            True if the rule was applied, False if it was skipped
        """
        if rule.is_listable and snapshot.contains(rule):
            logger.info("Skipping existing rule: %s", rule)
            return False
        self.apply_unconditional(rule)
        snapshot.add(rule)
        return True

    def apply_rules(self, rules: List[FirewallRule]) -> None:
        for rule in rules:
            self.apply_unconditional(rule)

    def init_chains(self) -> int:
        """
        Create the managed chains, their jump rules and default policies.

        Returns:
            Number of rules actually applied
        """
        snapshot = self.snapshot()
        applied = 0
        for rule in self.rules.create_rules():
            if self.apply_idempotent(rule, snapshot):
                applied += 1
        logger.info("Chains initialized (%d rules applied)", applied)
        return applied

    def flush_chain(self, name: str, nat: bool = False) -> None:
        self.apply_unconditional(FirewallRule(table="nat" if nat else "filter", op="flush", chain=name))

    def flush_all(self) -> None:
        """Flush the ingress, forward and egress chains."""
        self.flush_chain(INGRESS_CHAIN, nat=True)
        self.flush_chain(FORWARD_CHAIN)
        self.flush_chain(EGRESS_CHAIN, nat=True)

    def apply_ingress(self, wan: str, lan: ResolvedLan) -> None:
        """Apply the ingress rules for one LAN."""
        logger.info("Applying ingress rules for %s (gateway %s)", lan.iface, lan.gateway_ip)
        self.apply_rules(self.rules.ingress_rules(wan, lan.iface, lan.gateway_ip))

    def apply_egress(self, wan: str) -> None:
        """Apply the egress rules for the WAN interface."""
        logger.info("Applying egress rules for %s", wan)
        self.apply_rules(self.rules.egress_rules(wan))

    def remove_chains(self) -> List[BackendError]:
        """
        Flush and delete the managed chains.

        Every step is attempted even if earlier ones fail. Errors are logged
        and returned, never raised.

        Returns:
            Errors reported by the packet filter, in order
        """
        errors: List[BackendError] = []
        steps = [
            FirewallRule(table="nat", op="flush", chain=INGRESS_CHAIN),
            FirewallRule(table="filter", op="flush", chain=FORWARD_CHAIN),
            FirewallRule(table="nat", op="flush", chain=EGRESS_CHAIN),
        ] + self.rules.delete_rules()
        for rule in steps:
            try:
                self.apply_unconditional(rule)
            except BackendError as e:
                errors.append(e)
        return errors
