"""iptables packet filter backend."""

import logging
import shlex
from typing import List, Literal, Optional, Union

from pydantic import ConfigDict, Field, model_validator

from .base import RouterModel
from .connection import Connection
from .errors import BackendError

logger = logging.getLogger(__name__)

Table = Literal["filter", "nat"]
Operation = Literal["new_chain", "append", "insert", "delete", "policy", "flush", "delete_chain"]

OP_FLAGS = {
    "new_chain": "-N",
    "append": "-A",
    "insert": "-I",
    "delete": "-D",
    "policy": "-P",
    "flush": "-F",
    "delete_chain": "-X",
}

# Ops whose effect shows up in `iptables -S` and can be checked for membership.
LISTABLE_OPS = ("new_chain", "append", "insert", "policy")

_LONG_OPTIONS = {
    "--append": "-A",
    "--insert": "-A",
    "-I": "-A",
    "--new-chain": "-N",
    "--new": "-N",
    "--policy": "-P",
    "--source": "-s",
    "--src": "-s",
    "--destination": "-d",
    "--dst": "-d",
    "--in-interface": "-i",
    "--out-interface": "-o",
    "--protocol": "-p",
    "--jump": "-j",
    "--match": "-m",
}


def _host(address: str) -> str:
    return address if "/" in address else f"{address}/32"


def canonicalize(text: str) -> str:
    """
    Normalize a rule so generated rules and listed rules compare equal.

    Accepts either a full command (``sudo iptables -t nat -A X -j Y``) or a
    line of ``iptables -S`` output. Whitespace and quoting are normalized,
    the ``-t <table>`` selector is dropped, long options are shortened,
    inserts are rendered as appends and bare host addresses get ``/32``.
    """
    tokens = shlex.split(text)
    while tokens and tokens[0] in ("sudo", "iptables"):
        tokens.pop(0)

    out: List[str] = []
    i = 0
    while i < len(tokens):
        token = _LONG_OPTIONS.get(tokens[i], tokens[i])
        if token in ("-t", "--table"):
            i += 2
            continue
        out.append(token)
        if token in ("-s", "-d") and i + 1 < len(tokens):
            out.append(_host(tokens[i + 1]))
            i += 2
            continue
        i += 1
    return " ".join(out)


class FirewallRule(RouterModel):
    """A concrete packet filter command.

    ``jump`` is the rule target; for ``policy`` it is the chain's default
    policy (ACCEPT or DROP).
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    table: Table = "filter"
    op: Operation = "append"
    chain: str = Field(..., min_length=1)
    source: Optional[str] = None
    destination: Optional[str] = None
    in_interface: Optional[str] = None
    out_interface: Optional[str] = None
    protocol: Optional[str] = None
    dport: Optional[Union[int, str]] = None
    ctstate: Optional[str] = None
    jump: Optional[str] = None
    to_ports: Optional[Union[int, str]] = None

    @model_validator(mode="after")
    def _check_op(self) -> "FirewallRule":
        if self.op == "policy" and not self.jump:
            raise ValueError(f"policy rule for {self.chain} needs a target in 'jump'")
        if self.dport is not None and self.protocol not in ("tcp", "udp"):
            raise ValueError("dport requires protocol tcp or udp")
        return self

    def match_args(self) -> List[str]:
        """Match and target arguments, in the order `iptables -S` prints them."""
        args: List[str] = []
        if self.source:
            args.extend(["-s", _host(self.source)])
        if self.destination:
            args.extend(["-d", _host(self.destination)])
        if self.in_interface:
            args.extend(["-i", self.in_interface])
        if self.out_interface:
            args.extend(["-o", self.out_interface])
        if self.protocol:
            args.extend(["-p", self.protocol])
        if self.dport is not None:
            args.extend(["-m", str(self.protocol), "--dport", str(self.dport)])
        if self.ctstate:
            args.extend(["-m", "conntrack", "--ctstate", self.ctstate])
        if self.jump:
            args.extend(["-j", self.jump])
        if self.to_ports is not None:
            args.extend(["--to-ports", str(self.to_ports)])
        return args

    def to_args(self) -> List[str]:
        """iptables arguments after the table selector."""
        args = [OP_FLAGS[self.op], self.chain]
        if self.op == "policy":
            args.append(str(self.jump))
        elif self.op not in ("new_chain", "flush", "delete_chain"):
            args.extend(self.match_args())
        return args

    def canonical(self) -> str:
        """Canonical form for comparison against listed rules."""
        return canonicalize(shlex.join(self.to_args()))

    @property
    def is_listable(self) -> bool:
        return self.op in LISTABLE_OPS

    def __str__(self) -> str:
        return shlex.join(["-t", self.table] + self.to_args())


class Iptables:
    """Runs FirewallRules through the iptables binary on a connection."""

    def __init__(self, connection: Connection, sudo: bool = True, binary: str = "iptables") -> None:
        self.connection = connection
        self.sudo = sudo
        self.binary = binary

    def _base(self, table: str) -> List[str]:
        prefix = ["sudo"] if self.sudo else []
        return prefix + [self.binary, "-t", table]

    def command(self, rule: FirewallRule) -> str:
        """Shell command that applies a rule."""
        return shlex.join(self._base(rule.table) + rule.to_args())

    def run(self, rule: FirewallRule) -> None:
        """
        Apply a rule.

        Raises:
            BackendError: If iptables exits non-zero
        """
        cmd = self.command(rule)
        logger.debug("Running %s", cmd)
        stdout, stderr, exit_code = self.connection.execute(cmd)
        if exit_code != 0:
            detail = stderr.strip() or stdout.strip()
            raise BackendError(
                f"iptables failed (table={rule.table}, chain={rule.chain}, rule='{rule}'): {detail}",
                backend="iptables",
                command=cmd,
                detail=detail,
            )

    def list_rules(self, table: str) -> List[str]:
        """
        List the rules of a table in `iptables -S` format.

        Raises:
            BackendError: If the listing fails
        """
        cmd = shlex.join(self._base(table) + ["-S"])
        stdout, stderr, exit_code = self.connection.execute(cmd)
        if exit_code != 0:
            raise BackendError(
                f"Failed to list {table} rules: {stderr.strip()}",
                backend="iptables",
                command=cmd,
                detail=stderr.strip(),
            )
        return [line.strip() for line in stdout.splitlines() if line.strip()]
