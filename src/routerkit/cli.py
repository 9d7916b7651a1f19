"""Command-line interface for routerkit."""

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Optional

import click
from dotenv import load_dotenv

from . import __version__
from .config import RouterConfig, load_config
from .connection import Connection, LocalConnection
from .errors import ConfigValidationError, DeploymentError, RouterError
from .router import Router
from .ssh import SSHConnection
from .topology import validate as validate_topology


def _load_env_files() -> None:
    """Load environment variables from .env in the working directory or above."""
    cwd_env = Path.cwd() / ".env"
    if cwd_env.exists():
        load_dotenv(cwd_env)
    else:
        load_dotenv()


_load_env_files()


def parse_target(target: str) -> dict[str, Any]:
    """
    Parse a target string into SSH connection parameters.

    Supports:
    - IP address: 192.168.1.1
    - Hostname: router.local
    - IP:port: 192.168.1.1:2222
    - user@host: root@192.168.1.1
    - user@host:port: root@192.168.1.1:2222

    Returns:
        Dictionary with host, port and username
    """
    result: dict[str, Any] = {"host": target, "port": 22, "username": "root"}

    if "@" in target:
        user_part, host_part = target.split("@", 1)
        result["username"] = user_part
        target = host_part

    if ":" in target:
        # IPv6 addresses in brackets [::1]:port
        if target.startswith("["):
            match = re.match(r"\[([^\]]+)\]:?(\d+)?", target)
            if match:
                result["host"] = match.group(1)
                if match.group(2):
                    result["port"] = int(match.group(2))
        else:
            host, port = target.rsplit(":", 1)
            result["host"] = host
            try:
                result["port"] = int(port)
            except ValueError:
                result["host"] = target
    else:
        result["host"] = target

    return result


def create_connection(
    target: Optional[str],
    password: Optional[str] = None,
    key_file: Optional[str] = None,
    timeout: int = 30,
) -> Connection:
    """Connect over SSH when a target is given, else run locally."""
    if not target or target in ("local", "localhost"):
        return LocalConnection()

    params = parse_target(target)
    return SSHConnection(
        host=params["host"],
        port=params["port"],
        username=params["username"],
        password=password,
        key_filename=key_file,
        timeout=timeout,
    )


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def target_options(func: Any) -> Any:
    """Connection options shared by the commands that touch a router."""
    options = [
        click.option("--target", envvar="ROUTERKIT_TARGET", default=None,
                     help="Router to configure over SSH (default: this machine)"),
        click.option("-p", "--password", envvar="ROUTERKIT_PASSWORD", help="SSH password"),
        click.option("-k", "--key-file", type=click.Path(exists=True), envvar="ROUTERKIT_KEY_FILE",
                     help="SSH private key file"),
        click.option("-t", "--timeout", default=30, envvar="ROUTERKIT_TIMEOUT",
                     help="Connection timeout in seconds"),
        click.option("-v", "--verbose", is_flag=True, help="Show every command as it runs"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="routerkit")
def cli() -> None:
    """routerkit - turn a host with several interfaces into a router.

    Describe one WAN and any number of LANs in a YAML or JSON file; routerkit
    addresses the interfaces, serves DHCP, starts access points, enables
    forwarding and installs the firewall.

    Examples:

        \b
        # Check a configuration
        routerkit validate router.yaml

        \b
        # Show the resolved plan and firewall rules
        routerkit plan router.yaml

        \b
        # Deploy on this machine
        routerkit deploy router.yaml

        \b
        # Deploy on a remote router
        routerkit deploy router.yaml --target root@10.0.0.1 -k ~/.ssh/id_ed25519
    """
    pass


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate(config_file: str) -> None:
    """Validate a configuration file without touching any router.

    Every problem found is reported, not just the first.

    Examples:

        \b
        routerkit validate router.yaml
    """
    try:
        config = load_config(config_file)
    except (FileNotFoundError, ConfigValidationError) as e:
        click.echo(f"Error: Invalid configuration: {e}", err=True)
        sys.exit(1)

    errors = validate_topology(config)
    if errors:
        click.echo(f"Error: Invalid configuration ({len(errors)} problem(s)):", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    click.echo("Configuration is valid!")
    click.echo(f"  - WAN: {config.wan.iface} ({config.wan.mode})")
    click.echo(f"  - LANs: {len(config.lans)}")
    click.echo(f"  - DHCP pools: {sum(1 for lan in config.lans if lan.dhcp_server is not None)}")
    click.echo(f"  - Access points: {sum(1 for lan in config.lans if lan.access_point is not None)}")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
def plan(config_file: str) -> None:
    """Show the resolved topology and the firewall rules it installs.

    Examples:

        \b
        routerkit plan router.yaml
    """
    try:
        config = load_config(config_file)
        router = Router(config, connection=LocalConnection())
    except (FileNotFoundError, RouterError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    wan = router.wan
    click.echo(f"WAN {wan.iface}: {wan.definition}")
    for lan in router.lans:
        click.echo(f"LAN {lan.iface}: {lan.address} (netmask {lan.netmask})")
        if lan.dhcp is not None:
            dhcp = lan.dhcp
            click.echo(f"  dhcp: {dhcp.begin_ip} - {dhcp.end_ip}, dns {', '.join(dhcp.nameservers)}")
        if lan.access_point is not None:
            click.echo(f"  access point: {lan.access_point.ssid} (channel {lan.access_point.channel})")

    rules = router.rules
    click.echo("\n# Firewall chains:")
    for rule in rules.create_rules():
        click.echo(f"iptables {rule}")
    click.echo("\n# Per-deployment rules:")
    for lan in router.lans:
        for rule in rules.ingress_rules(wan.iface, lan.iface, lan.gateway_ip):
            click.echo(f"iptables {rule}")
    for rule in rules.egress_rules(wan.iface):
        click.echo(f"iptables {rule}")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
@target_options
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def deploy(
    config_file: str,
    target: Optional[str],
    password: Optional[str],
    key_file: Optional[str],
    timeout: int,
    verbose: bool,
    yes: bool,
) -> None:
    """Deploy a configuration.

    CONFIG_FILE is the path to a YAML or JSON configuration file.

    Examples:

        \b
        routerkit deploy router.yaml
        routerkit deploy router.yaml --target 10.0.0.1 -p password -y
    """
    _setup_logging(verbose)
    try:
        config = load_config(config_file)
        conn = create_connection(target, password, key_file, timeout)
        router = Router(config, connection=conn)
    except (FileNotFoundError, RouterError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    where = target or "this machine"
    if not yes and not click.confirm(f"Deploy {len(config.lans)} LAN(s) on {where}?"):
        click.echo("Aborted.")
        return

    try:
        with conn:
            result = router.deploy()
    except DeploymentError as e:
        click.echo(f"Error: {e}", err=True)
        for iface, message in sorted(e.failures.items()):
            click.echo(f"  - {iface}: {message}", err=True)
        sys.exit(1)
    except ConnectionError as e:
        click.echo(f"Error: Failed to connect to {where}: {e}", err=True)
        sys.exit(1)
    except RouterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"\nDeployed on {where}: {', '.join(result.steps)}")
    if result.forwarding_enabled:
        click.echo("IPv4 forwarding enabled")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
@target_options
def teardown(
    config_file: str,
    target: Optional[str],
    password: Optional[str],
    key_file: Optional[str],
    timeout: int,
    verbose: bool,
) -> None:
    """Remove the firewall chains installed by deploy.

    Examples:

        \b
        routerkit teardown router.yaml
    """
    _setup_logging(verbose)
    try:
        config = load_config(config_file)
        conn = create_connection(target, password, key_file, timeout)
        router = Router(config, connection=conn)
        with conn:
            errors = router.teardown()
    except ConnectionError as e:
        click.echo(f"Error: Failed to connect to {target}: {e}", err=True)
        sys.exit(1)
    except (FileNotFoundError, RouterError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if errors:
        click.echo(f"Teardown finished with {len(errors)} error(s):", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)
    click.echo("Firewall chains removed.")


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["yaml", "json"]), default="yaml",
              help="Output format (default: yaml)")
def schema(output_format: str) -> None:
    """Print the configuration schema."""
    title = "routerkit configuration"
    if output_format == "json":
        click.echo(json.dumps(RouterConfig.json_schema(title=title), indent=2))
    else:
        click.echo(RouterConfig.yaml_schema(title=title))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
