"""Shared fixtures: an in-memory router host."""

import shlex
import threading
from typing import Dict, List, Optional, Tuple

import pytest

from routerkit.config import RouterConfig

FILE_COMMANDS = ("install", "rm", "cat")

BUILTIN_CHAINS = {
    "filter": ["INPUT", "FORWARD", "OUTPUT"],
    "nat": ["PREROUTING", "INPUT", "OUTPUT", "POSTROUTING"],
}


class FakeIptables:
    """Enough of iptables' behaviour to exercise chain and rule management."""

    def __init__(self):
        self.policies = {table: {c: "ACCEPT" for c in chains} for table, chains in BUILTIN_CHAINS.items()}
        self.chains: Dict[str, Dict[str, List[str]]] = {
            table: {c: [] for c in chains} for table, chains in BUILTIN_CHAINS.items()
        }

    def list_rules(self, table: str) -> List[str]:
        lines = [f"-P {chain} {policy}" for chain, policy in self.policies[table].items()]
        lines += [f"-N {chain}" for chain in self.chains[table] if chain not in self.policies[table]]
        for chain, rules in self.chains[table].items():
            lines += [f"-A {chain} {rule}" for rule in rules]
        return lines

    def rule_count(self) -> int:
        return sum(len(rules) for table in self.chains.values() for rules in table.values())

    def run(self, args: List[str]) -> Tuple[str, str, int]:
        table = "filter"
        if args[:1] == ["-t"]:
            table = args[1]
            args = args[2:]
        flag, rest = args[0], args[1:]
        chains = self.chains[table]

        if flag == "-S":
            return "\n".join(self.list_rules(table)) + "\n", "", 0

        chain = rest[0]
        spec = " ".join(rest[1:])
        if flag == "-N":
            if chain in chains:
                return "", "iptables: Chain already exists.", 1
            chains[chain] = []
            return "", "", 0
        if chain not in chains:
            return "", "iptables: No chain/target/match by that name.", 1
        if flag == "-A":
            chains[chain].append(spec)
        elif flag == "-I":
            chains[chain].insert(0, spec)
        elif flag == "-D":
            if spec not in chains[chain]:
                return "", "iptables: Bad rule (does a matching rule exist in that chain?).", 1
            chains[chain].remove(spec)
        elif flag == "-P":
            if chain not in self.policies[table]:
                return "", "iptables: Bad built-in chain name.", 1
            self.policies[table][chain] = spec
        elif flag == "-F":
            chains[chain] = []
        elif flag == "-X":
            referenced = any(r.endswith(f"-j {chain}") for rules in chains.values() for r in rules)
            if chains[chain] or referenced:
                return "", "iptables: Too many links.", 1
            del chains[chain]
        else:
            return "", f"iptables: unknown option {flag}", 2
        return "", "", 0


class FakeConnection:
    """
    In-memory stand-in for a router host.

    Commands are recorded in order; ``iptables`` commands run against a
    FakeIptables and ``install``, ``rm`` and ``cat`` act on ``files``.
    Everything else succeeds unless it contains one of the substrings in
    ``failures``.
    """

    def __init__(self, files: Optional[Dict[str, str]] = None, failures: Optional[Dict[str, str]] = None):
        self.host = "fake"
        self.files: Dict[str, str] = dict(files or {})
        self.failures: Dict[str, str] = dict(failures or {})
        self.commands: List[str] = []
        self.reads: List[str] = []
        self.iptables = FakeIptables()
        self._lock = threading.Lock()

    def connect(self) -> None:
        pass

    def disconnect(self) -> None:
        pass

    def execute(self, command: str) -> Tuple[str, str, int]:
        with self._lock:
            self.commands.append(command)
            for needle, message in self.failures.items():
                if needle in command:
                    return "", message, 1
            tokens = shlex.split(command)
            if tokens and tokens[0] == "sudo":
                tokens = tokens[1:]
            if tokens and tokens[0] == "iptables":
                return self.iptables.run(tokens[1:])
            if tokens and tokens[0] in FILE_COMMANDS:
                return self._file_command(tokens)
            return "", "", 0

    def _file_command(self, tokens: List[str]) -> Tuple[str, str, int]:
        name, path = tokens[0], tokens[-1]
        if name == "install":
            source = tokens[-2]
            if source not in self.files:
                return "", f"install: cannot stat '{source}'", 1
            self.files[path] = self.files[source]
        elif name == "rm":
            self.files.pop(path, None)
        elif path not in self.files:
            return "", f"cat: {path}: No such file or directory", 1
        else:
            return self.files[path], "", 0
        return "", "", 0

    def read_file(self, path: str) -> Optional[str]:
        self.reads.append(path)
        return self.files.get(path)

    def write_file(self, path: str, content: str) -> None:
        with self._lock:
            self.files[path] = content

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def service_commands(self) -> List[str]:
        """Commands other than file installs and reads."""
        return [c for c in self.commands if c.replace("sudo ", "", 1).split()[0] not in FILE_COMMANDS]

    def iptables_mutations(self) -> List[str]:
        """iptables commands other than listings."""
        return [c for c in self.commands if "iptables" in c and not c.endswith("-S")]

    def index_of(self, needle: str) -> int:
        """Position of the first command containing ``needle``."""
        for i, command in enumerate(self.commands):
            if needle in command:
                return i
        raise AssertionError(f"no command containing {needle!r} in {self.commands}")

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def home_config():
    """WAN on eth0 (DHCP), a wired LAN with DHCP and a wireless LAN."""
    return RouterConfig.from_dict({
        "wan": {"iface": "eth0"},
        "lans": [
            {
                "iface": "eth1",
                "network": "192.168.4.0",
                "prefix": 24,
                "dhcp_server": {"domain": "home"},
            },
            {
                "iface": "wlan0",
                "network": "192.168.5.0",
                "dhcp_server": {},
                "access_point": {"ssid": "home-wifi", "password": "correct-horse"},
            },
        ],
    })


@pytest.fixture
def three_ap_config():
    lans = [
        {
            "iface": f"wlan{i}",
            "network": f"10.0.{i}.0",
            "access_point": {"ssid": f"ap{i}", "password": "passw0rd!"},
        }
        for i in range(3)
    ]
    return RouterConfig.from_dict({"wan": {"iface": "eth0"}, "lans": lans})
