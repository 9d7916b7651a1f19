#!/usr/bin/env python3
"""
Simple example demonstrating basic routerkit usage.
"""

from routerkit import LanConfig, RouterConfig, Router, SSHConnection, WanConfig


def main():
    # WAN with DHCP, one wired and one wireless LAN
    config = RouterConfig() \
        .with_wan(WanConfig(iface="eth0").with_dhcp()) \
        .with_lan(LanConfig(iface="eth1", network="192.168.4.0").with_dhcp_server()) \
        .with_lan(
            LanConfig(iface="wlan0", network="192.168.5.0", prefix=24)
            .with_dhcp_server()
            .with_access_point("MyNetwork", "MySecurePassword123", channel=6)
        )

    print("Configuration:")
    print("=" * 60)
    print(config.to_yaml())

    # Resolving happens when the Router is built; nothing is touched yet
    ssh = SSHConnection(host="10.0.0.1", username="root", key_filename="/path/to/ssh/key")
    router = Router(config, connection=ssh)

    for lan in router.lans:
        print(f"{lan.iface}: gateway {lan.gateway_ip}/{lan.prefix}")
        if lan.dhcp:
            print(f"  DHCP {lan.dhcp.begin_ip} - {lan.dhcp.end_ip}")

    # Deploy (commented out)
    # with ssh:
    #     result = router.deploy()
    #     print("Deployed:", ", ".join(result.steps))


if __name__ == "__main__":
    main()
