import argparse
import logging
import os
import sys

from . import __version__, api
from .config import load_config
from .errors import EdgeGatewayError
from .gateway import EdgeGateway
from .models import Reference, Task
from .util import setup_logging

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="edgegateway",
        description="Inspect and reconfigure vCloud edge gateway network services.",
    )
    p.add_argument(
        "--gateway",
        help="edge gateway href (default: $VCLOUD_GATEWAY_HREF)",
    )
    p.add_argument("--env-file", default=".env", help="dotenv file with credentials")
    p.add_argument("--wait", action="store_true", help="poll the resulting task until it finishes")
    p.add_argument("-v", "--verbose", action="store_true", help="verbose logging")
    p.add_argument("--version", action="version", version=f"edgegateway {__version__}")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="print interfaces and service rules")

    for name in ("add-nat", "remove-nat"):
        nat = sub.add_parser(name, help=f"{name.split('-')[0]} a port mapping")
        nat.add_argument("nat_type", choices=["SNAT", "DNAT"])
        nat.add_argument("external_ip")
        nat.add_argument("external_port")
        nat.add_argument("internal_ip")
        nat.add_argument("internal_port")

    for name in ("add-1to1", "remove-1to1"):
        one = sub.add_parser(name, help=f"{name.split('-')[0]} a 1:1 NAT mapping with firewall rules")
        one.add_argument("internal")
        one.add_argument("external")
        if name == "add-1to1":
            one.add_argument("--description", default="")

    dhcp = sub.add_parser("add-dhcp", help="replace the DHCP pool of a network")
    dhcp.add_argument("network_href")
    dhcp.add_argument("start_address")
    dhcp.add_argument("end_address")
    dhcp.add_argument("--network-name")
    dhcp.add_argument("--default-lease-time", type=int)
    dhcp.add_argument("--max-lease-time", type=int)
    return p


def show(gateway: EdgeGateway):
    record = gateway.record
    print(f"{record.name} [{record.status}] {record.href}")
    for gi in record.configuration.interfaces:
        network = gi.network.href if gi.network is not None else "-"
        print(f"  interface {gi.name} ({gi.interface_type}) -> {network}")

    services = record.configuration.services
    if services.dhcp is not None:
        print(f"dhcp enabled={services.dhcp.is_enabled}")
        for pool in services.dhcp.pools:
            print(f"  {pool.network.name or pool.network.href}: {pool.low_ip_address}-{pool.high_ip_address}")
    if services.nat is not None:
        print(f"nat enabled={services.nat.is_enabled}")
        for rule in services.nat.rules:
            g = rule.gateway_nat_rule
            if g is None:
                bodies = ", ".join(e.tag.rsplit("}", 1)[-1] for e in rule.extra)
                print(f"  {rule.rule_type} ({bodies})")
                continue
            print(
                f"  {rule.rule_type} {g.original_ip}:{g.original_port or 'any'}"
                f" -> {g.translated_ip}:{g.translated_port or 'any'} ({g.protocol})"
            )
    if services.firewall is not None:
        print(f"firewall enabled={services.firewall.is_enabled} default={services.firewall.default_action}")
        for rule in services.firewall.rules:
            print(
                f"  {rule.policy} {rule.source_ip}:{rule.source_port_range}"
                f" -> {rule.destination_ip}:{rule.destination_port_range}"
            )


def run(args: argparse.Namespace, gateway: EdgeGateway) -> Task | None:
    if args.command == "show":
        show(gateway)
        return None
    if args.command == "add-nat":
        return gateway.add_nat_port_mapping(
            args.nat_type, args.external_ip, args.external_port, args.internal_ip, args.internal_port
        )
    if args.command == "remove-nat":
        return gateway.remove_nat_port_mapping(
            args.nat_type, args.external_ip, args.external_port, args.internal_ip, args.internal_port
        )
    if args.command == "add-1to1":
        return gateway.create_1to1_mapping(args.internal, args.external, args.description)
    if args.command == "remove-1to1":
        return gateway.remove_1to1_mapping(args.internal, args.external)
    if args.command == "add-dhcp":
        network = Reference(href=args.network_href, name=args.network_name)
        return gateway.add_dhcp_pool(
            network,
            [
                {
                    "start_address": args.start_address,
                    "end_address": args.end_address,
                    "default_lease_time": args.default_lease_time,
                    "max_lease_time": args.max_lease_time,
                }
            ],
        )
    raise ValueError(f"unknown command {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    shared = load_config(args.env_file)
    href = args.gateway or os.getenv("VCLOUD_GATEWAY_HREF")
    if not href:
        log.error("no edge gateway href given, use --gateway or VCLOUD_GATEWAY_HREF")
        return 2
    s = api.new_session(shared)

    try:
        gateway = EdgeGateway.from_href(s, shared, href)
        task = run(args, gateway)
        if task is None:
            return 0
        log.info("task %s queued: %s", task.href, task.status)
        if args.wait:
            task = api.wait_for_task(s, shared, task)
            log.info("task %s finished: %s", task.href, task.status)
    except EdgeGatewayError as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
