"""Tests for idempotent chain management."""

import logging

import pytest

from routerkit.errors import BackendError
from routerkit.firewall import FirewallManager, FirewallSnapshot
from routerkit.iptables import FirewallRule, Iptables
from routerkit.rules import load_rule_document
from routerkit.topology import ResolvedLan


@pytest.fixture
def manager(conn):
    return FirewallManager(Iptables(conn), load_rule_document())


def _lan(iface="eth1", gateway="192.168.4.1"):
    return ResolvedLan(iface=iface, gateway_ip=gateway, prefix=24, netmask="255.255.255.0", subnet="192.168.4.0")


def test_snapshot_is_canonical(conn, manager):
    snapshot = manager.snapshot()
    assert "-P FORWARD ACCEPT" in snapshot.filter
    assert "-P POSTROUTING ACCEPT" in snapshot.nat


def test_apply_idempotent_mutates_once(conn, manager):
    rule = FirewallRule(op="new_chain", chain="ROUTER-FORWARD")
    snapshot = manager.snapshot()

    assert manager.apply_idempotent(rule, snapshot) is True
    assert manager.apply_idempotent(rule, snapshot) is False
    assert conn.iptables_mutations() == ["sudo iptables -t filter -N ROUTER-FORWARD"]


def test_apply_idempotent_skips_existing_rules(conn, manager, caplog):
    conn.execute("iptables -t filter -N ROUTER-FORWARD")
    conn.commands.clear()

    with caplog.at_level(logging.INFO, logger="routerkit.firewall"):
        applied = manager.apply_idempotent(FirewallRule(op="new_chain", chain="ROUTER-FORWARD"), manager.snapshot())

    assert applied is False
    assert conn.iptables_mutations() == []
    assert "Skipping existing rule" in caplog.text


def test_snapshot_replaces_policy():
    snapshot = FirewallSnapshot(filter={"-P FORWARD ACCEPT"})
    drop = FirewallRule(op="policy", chain="FORWARD", jump="DROP")

    snapshot.add(drop)

    assert snapshot.filter == {"-P FORWARD DROP"}
    assert snapshot.contains(drop)


def test_init_chains_creates_everything(conn, manager):
    applied = manager.init_chains()

    assert applied == 7
    filter_rules = conn.iptables.list_rules("filter")
    nat_rules = conn.iptables.list_rules("nat")
    assert "-N ROUTER-FORWARD" in filter_rules
    assert "-A FORWARD -j ROUTER-FORWARD" in filter_rules
    assert "-P FORWARD DROP" in filter_rules
    assert "-N ROUTER-INGRESS" in nat_rules
    assert "-N ROUTER-EGRESS" in nat_rules
    assert "-A PREROUTING -j ROUTER-INGRESS" in nat_rules
    assert "-A POSTROUTING -j ROUTER-EGRESS" in nat_rules


def test_init_chains_twice_creates_nothing_new(conn, manager):
    manager.init_chains()
    before = conn.iptables.rule_count()
    conn.commands.clear()

    assert manager.init_chains() == 0
    assert conn.iptables_mutations() == []
    assert conn.iptables.rule_count() == before


def test_flush_all_order(conn, manager):
    manager.init_chains()
    conn.commands.clear()

    manager.flush_all()

    assert conn.iptables_mutations() == [
        "sudo iptables -t nat -F ROUTER-INGRESS",
        "sudo iptables -t filter -F ROUTER-FORWARD",
        "sudo iptables -t nat -F ROUTER-EGRESS",
    ]


def test_flush_all_before_init_fails(manager):
    with pytest.raises(BackendError, match="chain=ROUTER-INGRESS"):
        manager.flush_all()


def test_ingress_and_egress(conn, manager):
    manager.init_chains()
    manager.apply_ingress("eth0", _lan())
    manager.apply_egress("eth0")

    nat = conn.iptables.chains["nat"]
    flt = conn.iptables.chains["filter"]
    assert nat["ROUTER-INGRESS"] == ["-d 192.168.4.1/32 -i eth1 -j ACCEPT"]
    assert flt["ROUTER-FORWARD"] == [
        "-i eth1 -o eth0 -j ACCEPT",
        "-i eth0 -o eth1 -m conntrack --ctstate RELATED,ESTABLISHED -j ACCEPT",
    ]
    assert nat["ROUTER-EGRESS"] == ["-o eth0 -j MASQUERADE"]


def test_apply_unconditional_logs_and_raises(conn, manager, caplog):
    with caplog.at_level(logging.ERROR, logger="routerkit.firewall"):
        with pytest.raises(BackendError):
            manager.apply_unconditional(FirewallRule(chain="NOPE", jump="ACCEPT"))

    assert "chain=NOPE" in caplog.text


def test_remove_chains_after_init(conn, manager):
    manager.init_chains()
    manager.apply_ingress("eth0", _lan())

    assert manager.remove_chains() == []
    assert "ROUTER-INGRESS" not in conn.iptables.chains["nat"]
    assert "ROUTER-FORWARD" not in conn.iptables.chains["filter"]
    assert "ROUTER-EGRESS" not in conn.iptables.chains["nat"]
    assert conn.iptables.policies["filter"]["FORWARD"] == "ACCEPT"
    assert conn.iptables.rule_count() == 0


def test_remove_chains_reports_errors_without_raising(conn, manager):
    """Every teardown step is attempted even when the chains are absent."""
    errors = manager.remove_chains()

    # Only the policy reset succeeds on a clean packet filter.
    assert len(errors) == 9
    assert all(isinstance(e, BackendError) for e in errors)
    assert "sudo iptables -t filter -P FORWARD ACCEPT" in conn.commands
    assert conn.commands[-1] == "sudo iptables -t nat -X ROUTER-EGRESS"
