"""Tests for the firewall rule document and placeholder expansion."""

import json

import pytest

from routerkit.errors import RuleTemplateError
from routerkit.rules import (
    RuleDocument,
    egress_substitutions,
    expand,
    ingress_substitutions,
    load_rule_document,
    substitute,
)


def test_substitute_all_placeholders():
    values = ingress_substitutions("eth0", "eth1", "192.168.4.1")
    text = "-i {{LAN}} -o {{WAN}} -d {{GATEWAY_IP}} -j ACCEPT"

    assert substitute(text, values) == "-i eth1 -o eth0 -d 192.168.4.1 -j ACCEPT"


def test_substitute_leaves_other_text_untouched():
    assert substitute("-m comment --comment 'WAN LAN {x}'", {"WAN": "eth0"}) == "-m comment --comment 'WAN LAN {x}'"


def test_substitute_is_single_pass():
    """A substituted value that looks like a token is not expanded again."""
    assert substitute("{{WAN}}", {"WAN": "{{LAN}}", "LAN": "eth1"}) == "{{LAN}}"


def test_substitute_is_order_independent():
    text = "{{LAN}}{{WAN}}"
    forward = substitute(text, {"WAN": "a", "LAN": "b"})
    backward = substitute(text, {"LAN": "b", "WAN": "a"})
    assert forward == backward == "ba"


def test_missing_placeholder_value():
    with pytest.raises(RuleTemplateError, match="GATEWAY_IP"):
        substitute("-d {{GATEWAY_IP}}", egress_substitutions("eth0"))


def test_expand_ingress_templates():
    document = load_rule_document()
    rules = expand(document.ingress, ingress_substitutions("eth0", "eth1", "192.168.4.1"))

    assert len(rules) == 3
    nat_accept, lan_out, wan_back = rules
    assert nat_accept.table == "nat"
    assert nat_accept.chain == "ROUTER-INGRESS"
    assert nat_accept.in_interface == "eth1"
    assert nat_accept.destination == "192.168.4.1"
    assert (lan_out.in_interface, lan_out.out_interface) == ("eth1", "eth0")
    assert (wan_back.in_interface, wan_back.out_interface) == ("eth0", "eth1")
    assert wan_back.ctstate == "RELATED,ESTABLISHED"
    for rule in rules:
        assert "{{" not in str(rule)


def test_egress_uses_wan_only():
    document = load_rule_document()
    rules = document.egress_rules("eth0")

    assert len(rules) == 1
    assert str(rules[0]) == "-t nat -A ROUTER-EGRESS -o eth0 -j MASQUERADE"


def test_packaged_document_sections():
    document = load_rule_document()

    assert document.version == 1
    create = [str(rule) for rule in document.create_rules()]
    assert create[0] == "-t nat -N ROUTER-INGRESS"
    assert "-t filter -P FORWARD DROP" in create
    delete = [str(rule) for rule in document.delete_rules()]
    assert delete[-1] == "-t nat -X ROUTER-EGRESS"
    assert "-t filter -P FORWARD ACCEPT" in delete


def test_expand_rejects_invalid_rule():
    with pytest.raises(RuleTemplateError, match="Invalid rule template"):
        expand([{"table": "mangle", "chain": "X"}])


def test_document_with_placeholder_in_create_all_is_rejected(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({
        "version": 1,
        "createAll": [{"table": "filter", "op": "append", "chain": "FORWARD", "in_interface": "{{LAN}}"}],
    }))
    with pytest.raises(RuleTemplateError):
        load_rule_document(str(path))


def test_egress_may_not_reference_lan(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"egress": [{"chain": "ROUTER-EGRESS", "out_interface": "{{LAN}}"}]}))
    with pytest.raises(RuleTemplateError, match="LAN"):
        load_rule_document(str(path))


def test_malformed_document(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text("{ not json")
    with pytest.raises(RuleTemplateError):
        load_rule_document(str(path))


def test_custom_document_from_dict():
    document = RuleDocument.from_dict({
        "ingress": [{"table": "filter", "chain": "ROUTER-FORWARD", "in_interface": "{{LAN}}", "jump": "ACCEPT"}],
    }).check()

    rules = document.ingress_rules("eth0", "wlan0", "10.0.0.1")
    assert str(rules[0]) == "-t filter -A ROUTER-FORWARD -i wlan0 -j ACCEPT"
    assert document.create_rules() == []


def test_misspelled_match_key_is_rejected(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({
        "ingress": [{"chain": "ROUTER-FORWARD", "in_iface": "{{LAN}}", "out_interface": "{{WAN}}", "jump": "ACCEPT"}],
    }))
    with pytest.raises(RuleTemplateError, match="in_iface"):
        load_rule_document(str(path))


def test_expand_rejects_unknown_key():
    with pytest.raises(RuleTemplateError, match="Invalid rule template #0"):
        expand([{"chain": "ROUTER-FORWARD", "in_iface": "eth1", "jump": "ACCEPT"}])


def test_misnamed_section_is_rejected(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"createall": [{"table": "nat", "op": "new_chain", "chain": "ROUTER-INGRESS"}]}))
    with pytest.raises(RuleTemplateError, match="createall"):
        load_rule_document(str(path))
