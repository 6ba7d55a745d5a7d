"""Structural rule matching and service merges.

The provider assigns no stable ID to NAT, firewall or DHCP entries, so "is this
the rule we created" is answered by comparing a fixed set of fields. Every
merge returns a new service object and leaves the snapshot it was given alone;
surviving entries keep their order and new entries go at the end.
"""

import copy
import logging

from .models import (
    DhcpPoolService,
    FirewallRule,
    FirewallRuleProtocols,
    FirewallService,
    GatewayDhcpService,
    GatewayInterface,
    GatewayNatRule,
    NatRule,
    NatService,
    Reference,
)

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TIME = 3600
MAX_LEASE_TIME = 7200


def find_uplink(interfaces: list[GatewayInterface]) -> Reference | None:
    # last uplink wins when a gateway has several
    uplink = None
    for gi in interfaces:
        if gi.interface_type != "uplink":
            continue
        uplink = gi.network
    return uplink


def _interface_href(rule: NatRule) -> str | None:
    gnr = rule.gateway_nat_rule
    if gnr is None or gnr.interface is None:
        return None
    return gnr.interface.href


def pool_on_network(pool: DhcpPoolService, network_href: str | None) -> bool:
    return pool.network.href == network_href


def nat_rule_matches_endpoint(
    rule: NatRule,
    nat_type: str,
    original_ip: str,
    original_port: str | None,
    interface_href: str | None,
) -> bool:
    # translated side is not compared, so every rule sharing the original
    # endpoint matches
    gnr = rule.gateway_nat_rule
    return (
        gnr is not None
        and rule.rule_type == nat_type
        and gnr.original_ip == original_ip
        and gnr.original_port == original_port
        and _interface_href(rule) == interface_href
    )


def nat_rule_matches_mapping(rule: NatRule, target: NatRule) -> bool:
    gnr = rule.gateway_nat_rule
    want = target.gateway_nat_rule
    if gnr is None or want is None:
        return False
    return (
        rule.rule_type == target.rule_type
        and gnr.original_ip == want.original_ip
        and gnr.original_port == want.original_port
        and gnr.translated_ip == want.translated_ip
        and gnr.translated_port == want.translated_port
        and _interface_href(rule) == _interface_href(target)
    )


def is_one_to_one_dnat(rule: NatRule, internal: str, external: str, uplink_href: str | None) -> bool:
    gnr = rule.gateway_nat_rule
    return (
        gnr is not None
        and rule.rule_type == "DNAT"
        and gnr.original_ip == external
        and gnr.translated_ip == internal
        and gnr.original_port == "any"
        and gnr.translated_port == "any"
        and gnr.protocol == "any"
        and _interface_href(rule) == uplink_href
    )


def is_one_to_one_snat(rule: NatRule, internal: str, external: str, uplink_href: str | None) -> bool:
    gnr = rule.gateway_nat_rule
    return (
        gnr is not None
        and rule.rule_type == "SNAT"
        and gnr.original_ip == internal
        and gnr.translated_ip == external
        and _interface_href(rule) == uplink_href
    )


def _allows_any(rule: FirewallRule) -> bool:
    return (
        rule.policy == "allow"
        and rule.protocols is not None
        and rule.protocols.any
        and rule.destination_port_range == "Any"
        and rule.source_port_range == "Any"
    )


def is_one_to_one_inbound(rule: FirewallRule, external: str) -> bool:
    return _allows_any(rule) and rule.source_ip == "Any" and rule.destination_ip == external


def is_one_to_one_outbound(rule: FirewallRule, internal: str) -> bool:
    return _allows_any(rule) and rule.source_ip == internal and rule.destination_ip == "Any"


def merge_dhcp_pools(
    existing: GatewayDhcpService | None, network: Reference, pools: list[dict]
) -> GatewayDhcpService:
    """Replaces every pool bound to `network` with the requested pools.

    Each entry of `pools` needs `start_address` and `end_address`; lease times
    default to 3600 and 7200 seconds.
    """
    if existing is None:
        service = GatewayDhcpService(is_enabled=True)
    else:
        service = GatewayDhcpService(is_enabled=existing.is_enabled)
        for pool in existing.pools:
            if pool_on_network(pool, network.href):
                logger.debug("replacing pool: %s", pool)
                continue
            logger.debug("keeping pool: %s", pool)
            service.pools.append(copy.deepcopy(pool))

    for data in pools:
        default_lease = data.get("default_lease_time")
        max_lease = data.get("max_lease_time")
        service.pools.append(
            DhcpPoolService(
                network=Reference(href=network.href, name=network.name),
                low_ip_address=data["start_address"],
                high_ip_address=data["end_address"],
                is_enabled=True,
                default_lease_time=DEFAULT_LEASE_TIME if default_lease is None else default_lease,
                max_lease_time=MAX_LEASE_TIME if max_lease is None else max_lease,
            )
        )
    return service


def _copy_nat_settings(existing: NatService) -> NatService:
    return NatService(
        is_enabled=existing.is_enabled,
        nat_type=existing.nat_type,
        policy=existing.policy,
        external_ip=existing.external_ip,
    )


def add_nat_rule(existing: NatService | None, rule: NatRule) -> NatService:
    if existing is None:
        service = NatService(is_enabled=True)
    else:
        service = _copy_nat_settings(existing)
        for v in existing.rules:
            if nat_rule_matches_mapping(v, rule):
                logger.debug("replacing %s rule: %s", v.rule_type, v.gateway_nat_rule)
                continue
            logger.debug("keeping %s rule: %s", v.rule_type, v.gateway_nat_rule)
            service.rules.append(copy.deepcopy(v))
    service.rules.append(rule)
    return service


def remove_nat_rules(
    existing: NatService,
    nat_type: str,
    original_ip: str,
    original_port: str | None,
    interface_href: str | None,
) -> NatService:
    service = _copy_nat_settings(existing)
    for v in existing.rules:
        if nat_rule_matches_endpoint(v, nat_type, original_ip, original_port, interface_href):
            logger.debug("removing %s rule: %s", v.rule_type, v.gateway_nat_rule)
            continue
        logger.debug("keeping %s rule: %s", v.rule_type, v.gateway_nat_rule)
        service.rules.append(copy.deepcopy(v))
    return service


def port_mapping_rule(
    nat_type: str,
    external_ip: str,
    external_port: str,
    internal_ip: str,
    internal_port: str,
    uplink_href: str | None,
) -> NatRule:
    return NatRule(
        rule_type=nat_type,
        is_enabled=True,
        gateway_nat_rule=GatewayNatRule(
            interface=Reference(href=uplink_href),
            original_ip=external_ip,
            original_port=external_port,
            translated_ip=internal_ip,
            translated_port=internal_port,
            protocol="tcp",
        ),
    )


def one_to_one_nat_rules(
    internal: str, external: str, description: str, uplink_href: str | None
) -> tuple[NatRule, NatRule]:
    snat = NatRule(
        rule_type="SNAT",
        description=description,
        is_enabled=True,
        gateway_nat_rule=GatewayNatRule(
            interface=Reference(href=uplink_href),
            original_ip=internal,
            translated_ip=external,
            protocol="any",
        ),
    )
    dnat = NatRule(
        rule_type="DNAT",
        description=description,
        is_enabled=True,
        gateway_nat_rule=GatewayNatRule(
            interface=Reference(href=uplink_href),
            original_ip=external,
            original_port="any",
            translated_ip=internal,
            translated_port="any",
            protocol="any",
        ),
    )
    return snat, dnat


def one_to_one_firewall_rules(
    internal: str, external: str, description: str
) -> tuple[FirewallRule, FirewallRule]:
    inbound = FirewallRule(
        description=description,
        is_enabled=True,
        policy="allow",
        protocols=FirewallRuleProtocols(any=True),
        destination_port_range="Any",
        destination_ip=external,
        source_port_range="Any",
        source_ip="Any",
        enable_logging=False,
    )
    outbound = FirewallRule(
        description=description,
        is_enabled=True,
        policy="allow",
        protocols=FirewallRuleProtocols(any=True),
        destination_port_range="Any",
        destination_ip="Any",
        source_port_range="Any",
        source_ip=internal,
        enable_logging=False,
    )
    return inbound, outbound


def remove_one_to_one_nat(
    existing: NatService | None, internal: str, external: str, uplink_href: str | None
) -> NatService:
    if existing is None:
        return NatService(is_enabled=True)
    service = _copy_nat_settings(existing)
    for v in existing.rules:
        if is_one_to_one_dnat(v, internal, external, uplink_href) or is_one_to_one_snat(
            v, internal, external, uplink_href
        ):
            logger.debug("removing %s rule: %s", v.rule_type, v.gateway_nat_rule)
            continue
        logger.debug("keeping %s rule: %s", v.rule_type, v.gateway_nat_rule)
        service.rules.append(copy.deepcopy(v))
    return service


def remove_one_to_one_firewall(
    existing: FirewallService | None, internal: str, external: str
) -> FirewallService | None:
    if existing is None:
        return None
    service = FirewallService(
        is_enabled=existing.is_enabled,
        default_action=existing.default_action,
        log_default_action=existing.log_default_action,
    )
    for v in existing.rules:
        if is_one_to_one_inbound(v, external) or is_one_to_one_outbound(v, internal):
            logger.debug("removing firewall rule: %s", v)
            continue
        logger.debug("keeping firewall rule: %s", v)
        service.rules.append(copy.deepcopy(v))
    return service
