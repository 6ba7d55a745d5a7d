"""vCloud 1.5 schema codec for edge gateway service configuration documents."""

import copy
import xml.etree.ElementTree as ET

from .errors import DecodeError
from .models import (
    VCLOUD_XMLNS,
    DhcpPoolService,
    EdgeGatewayRecord,
    EdgeGatewayServiceConfiguration,
    FirewallRule,
    FirewallRuleProtocols,
    FirewallService,
    GatewayDhcpService,
    GatewayInterface,
    GatewayNatRule,
    NatRule,
    NatService,
    Reference,
    Task,
)

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

# child order of FirewallRuleType and NatRuleType in the vCloud 1.5 schema
FIREWALL_RULE_ORDER = (
    "VCloudExtension",
    "Id",
    "IsEnabled",
    "MatchOnTranslate",
    "Description",
    "Policy",
    "Protocols",
    "IcmpSubType",
    "Port",
    "DestinationPortRange",
    "DestinationIp",
    "DestinationVm",
    "SourcePort",
    "SourcePortRange",
    "SourceIp",
    "SourceVm",
    "Direction",
    "EnableLogging",
)
NAT_RULE_ORDER = (
    "VCloudExtension",
    "Description",
    "RuleType",
    "IsEnabled",
    "Id",
    "GatewayNatRule",
    "OneToOneBasicRule",
    "OneToOneVmRule",
    "PortForwardingRule",
    "VmRule",
)
FIREWALL_RULE_FIELDS = tuple(
    tag for tag in FIREWALL_RULE_ORDER if tag not in ("VCloudExtension", "DestinationVm", "SourceVm")
)
NAT_RULE_FIELDS = ("Description", "RuleType", "IsEnabled", "Id", "GatewayNatRule")

ET.register_namespace("", VCLOUD_XMLNS)


def _q(tag: str) -> str:
    return f"{{{VCLOUD_XMLNS}}}{tag}"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


# --- decoding ---


def _child(el: ET.Element, tag: str) -> ET.Element | None:
    return next((c for c in el if _local(c.tag) == tag), None)


def _children(el: ET.Element, tag: str) -> list[ET.Element]:
    return [c for c in el if _local(c.tag) == tag]


def _text(el: ET.Element, tag: str) -> str | None:
    c = _child(el, tag)
    if c is None or c.text is None:
        return None
    return c.text.strip()


def _bool(el: ET.Element, tag: str, default: bool = False) -> bool:
    value = _text(el, tag)
    if value is None:
        return default
    return value.lower() == "true"


def _int(el: ET.Element, tag: str) -> int | None:
    value = _text(el, tag)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise DecodeError(f"{tag} is not an integer: {value!r}") from e


def _reference(el: ET.Element | None) -> Reference | None:
    if el is None:
        return None
    return Reference(el.get("href"), el.get("name"), el.get("type"))


def _qualify(el: ET.Element) -> ET.Element:
    for node in el.iter():
        if not node.tag.startswith("{"):
            node.tag = _q(node.tag)
    return el


def _parse(body: bytes | str, expected: str) -> ET.Element:
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise DecodeError(f"malformed XML: {e}") from e
    if _local(root.tag) != expected:
        raise DecodeError(f"expected <{expected}> document, got <{_local(root.tag)}>")
    return root


def decode_dhcp_service(el: ET.Element) -> GatewayDhcpService:
    pools = [
        DhcpPoolService(
            network=_reference(_child(p, "Network")) or Reference(),
            low_ip_address=_text(p, "LowIpAddress") or "",
            high_ip_address=_text(p, "HighIpAddress") or "",
            is_enabled=_bool(p, "IsEnabled"),
            default_lease_time=_int(p, "DefaultLeaseTime"),
            max_lease_time=_int(p, "MaxLeaseTime"),
        )
        for p in _children(el, "Pool")
    ]
    return GatewayDhcpService(_bool(el, "IsEnabled"), pools)


def _extra(el: ET.Element, modeled: tuple[str, ...]) -> list[ET.Element]:
    return [_qualify(c) for c in el if _local(c.tag) not in modeled]


def decode_nat_service(el: ET.Element) -> NatService:
    rules = []
    for r in _children(el, "NatRule"):
        gnr = _child(r, "GatewayNatRule")
        gateway_rule = None
        if gnr is not None:
            gateway_rule = GatewayNatRule(
                interface=_reference(_child(gnr, "Interface")),
                original_ip=_text(gnr, "OriginalIp"),
                original_port=_text(gnr, "OriginalPort"),
                translated_ip=_text(gnr, "TranslatedIp"),
                translated_port=_text(gnr, "TranslatedPort"),
                protocol=_text(gnr, "Protocol"),
                icmp_sub_type=_text(gnr, "IcmpSubType"),
            )
        rules.append(
            NatRule(
                rule_type=_text(r, "RuleType") or "",
                gateway_nat_rule=gateway_rule,
                is_enabled=_bool(r, "IsEnabled"),
                description=_text(r, "Description"),
                id=_text(r, "Id"),
                extra=_extra(r, NAT_RULE_FIELDS),
            )
        )
    return NatService(
        is_enabled=_bool(el, "IsEnabled"),
        nat_type=_text(el, "NatType"),
        policy=_text(el, "Policy"),
        rules=rules,
        external_ip=_text(el, "ExternalIp"),
    )


def decode_firewall_service(el: ET.Element) -> FirewallService:
    rules = []
    for r in _children(el, "FirewallRule"):
        protocols = None
        p = _child(r, "Protocols")
        if p is not None:
            protocols = FirewallRuleProtocols(
                icmp=_bool(p, "Icmp"),
                any=_bool(p, "Any"),
                tcp=_bool(p, "Tcp"),
                udp=_bool(p, "Udp"),
                other=_text(p, "Other"),
            )
        rules.append(
            FirewallRule(
                policy=_text(r, "Policy") or "allow",
                protocols=protocols,
                destination_port_range=_text(r, "DestinationPortRange"),
                destination_ip=_text(r, "DestinationIp"),
                source_port_range=_text(r, "SourcePortRange"),
                source_ip=_text(r, "SourceIp"),
                is_enabled=_bool(r, "IsEnabled"),
                match_on_translate=_bool(r, "MatchOnTranslate"),
                enable_logging=_bool(r, "EnableLogging"),
                description=_text(r, "Description"),
                id=_text(r, "Id"),
                direction=_text(r, "Direction"),
                icmp_sub_type=_text(r, "IcmpSubType"),
                port=_int(r, "Port"),
                source_port=_int(r, "SourcePort"),
                extra=_extra(r, FIREWALL_RULE_FIELDS),
            )
        )
    return FirewallService(
        is_enabled=_bool(el, "IsEnabled"),
        default_action=_text(el, "DefaultAction"),
        log_default_action=_bool(el, "LogDefaultAction"),
        rules=rules,
    )


def decode_service_configuration(el: ET.Element) -> EdgeGatewayServiceConfiguration:
    config = EdgeGatewayServiceConfiguration()
    for section in el:
        name = _local(section.tag)
        if name == "GatewayDhcpService":
            config.dhcp = decode_dhcp_service(section)
        elif name == "FirewallService":
            config.firewall = decode_firewall_service(section)
        elif name == "NatService":
            config.nat = decode_nat_service(section)
        else:
            config.passthrough.append(_qualify(section))
    return config


def decode_edge_gateway(body: bytes | str) -> EdgeGatewayRecord:
    root = _parse(body, "EdgeGateway")
    record = EdgeGatewayRecord(root.get("href"), root.get("name"), root.get("status"))

    conf = _child(root, "Configuration")
    if conf is None:
        return record

    interfaces = _child(conf, "GatewayInterfaces")
    if interfaces is not None:
        for gi in _children(interfaces, "GatewayInterface"):
            record.configuration.interfaces.append(
                GatewayInterface(
                    name=_text(gi, "Name") or "",
                    network=_reference(_child(gi, "Network")),
                    interface_type=_text(gi, "InterfaceType") or "",
                    use_for_default_route=_bool(gi, "UseForDefaultRoute"),
                )
            )

    services = _child(conf, "EdgeGatewayServiceConfiguration")
    if services is not None:
        record.configuration.services = decode_service_configuration(services)
    return record


def decode_task(body: bytes | str) -> Task:
    root = _parse(body, "Task")
    href = root.get("href")
    if not href:
        raise DecodeError("task has no href")
    error = _child(root, "Error")
    return Task(
        href=href,
        status=root.get("status", "queued"),
        name=root.get("name"),
        operation=root.get("operation"),
        operation_name=root.get("operationName"),
        start_time=root.get("startTime"),
        end_time=root.get("endTime"),
        error_message=error.get("message") if error is not None else None,
    )


def decode_error_message(body: bytes | str) -> str | None:
    """Returns the message of a vCloud <Error> document, if the body is one."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local(root.tag) != "Error":
        return None
    return root.get("message")


# --- encoding ---


def _sub(parent: ET.Element, tag: str, value=None) -> ET.Element:
    el = ET.SubElement(parent, _q(tag))
    if isinstance(value, bool):
        el.text = "true" if value else "false"
    elif value is not None:
        el.text = str(value)
    return el


def _sub_opt(parent: ET.Element, tag: str, value):
    if value is not None:
        _sub(parent, tag, value)


def _sub_ref(parent: ET.Element, tag: str, ref: Reference | None):
    if ref is None:
        return
    el = _sub(parent, tag)
    for attr in ("href", "name", "type"):
        value = getattr(ref, attr)
        if value is not None:
            el.set(attr, value)


def _emit_dhcp(parent: ET.Element, service: GatewayDhcpService):
    el = _sub(parent, "GatewayDhcpService")
    _sub(el, "IsEnabled", service.is_enabled)
    for pool in service.pools:
        p = _sub(el, "Pool")
        _sub(p, "IsEnabled", pool.is_enabled)
        _sub_ref(p, "Network", pool.network)
        _sub_opt(p, "DefaultLeaseTime", pool.default_lease_time)
        _sub_opt(p, "MaxLeaseTime", pool.max_lease_time)
        _sub(p, "LowIpAddress", pool.low_ip_address)
        _sub(p, "HighIpAddress", pool.high_ip_address)


def _place_extra(el: ET.Element, extra: list[ET.Element], order: tuple[str, ...]):
    """Adds copies of `extra` to `el` and puts every child in schema order."""
    el.extend(copy.deepcopy(c) for c in extra)
    rank = {tag: i for i, tag in enumerate(order)}
    # unknown tags keep their relative order after the known ones
    el[:] = sorted(el, key=lambda c: rank.get(_local(c.tag), len(order)))


def _emit_firewall(parent: ET.Element, service: FirewallService):
    el = _sub(parent, "FirewallService")
    _sub(el, "IsEnabled", service.is_enabled)
    _sub_opt(el, "DefaultAction", service.default_action)
    _sub(el, "LogDefaultAction", service.log_default_action)
    for rule in service.rules:
        r = _sub(el, "FirewallRule")
        _sub_opt(r, "Id", rule.id)
        _sub(r, "IsEnabled", rule.is_enabled)
        _sub(r, "MatchOnTranslate", rule.match_on_translate)
        _sub_opt(r, "Description", rule.description)
        _sub(r, "Policy", rule.policy)
        if rule.protocols is not None:
            p = _sub(r, "Protocols")
            # the schema only allows the flags that are set
            for tag, flag in (
                ("Tcp", rule.protocols.tcp),
                ("Udp", rule.protocols.udp),
                ("Icmp", rule.protocols.icmp),
                ("Any", rule.protocols.any),
            ):
                if flag:
                    _sub(p, tag, True)
            _sub_opt(p, "Other", rule.protocols.other)
        _sub_opt(r, "IcmpSubType", rule.icmp_sub_type)
        _sub_opt(r, "Port", rule.port)
        _sub_opt(r, "DestinationPortRange", rule.destination_port_range)
        _sub_opt(r, "DestinationIp", rule.destination_ip)
        _sub_opt(r, "SourcePort", rule.source_port)
        _sub_opt(r, "SourcePortRange", rule.source_port_range)
        _sub_opt(r, "SourceIp", rule.source_ip)
        _sub_opt(r, "Direction", rule.direction)
        _sub(r, "EnableLogging", rule.enable_logging)
        if rule.extra:
            _place_extra(r, rule.extra, FIREWALL_RULE_ORDER)


def _emit_nat(parent: ET.Element, service: NatService):
    el = _sub(parent, "NatService")
    _sub(el, "IsEnabled", service.is_enabled)
    _sub_opt(el, "NatType", service.nat_type)
    _sub_opt(el, "Policy", service.policy)
    for rule in service.rules:
        r = _sub(el, "NatRule")
        _sub_opt(r, "Description", rule.description)
        _sub(r, "RuleType", rule.rule_type)
        _sub(r, "IsEnabled", rule.is_enabled)
        _sub_opt(r, "Id", rule.id)
        gnr = rule.gateway_nat_rule
        if gnr is not None:
            g = _sub(r, "GatewayNatRule")
            _sub_ref(g, "Interface", gnr.interface)
            _sub_opt(g, "OriginalIp", gnr.original_ip)
            _sub_opt(g, "OriginalPort", gnr.original_port)
            _sub_opt(g, "TranslatedIp", gnr.translated_ip)
            _sub_opt(g, "TranslatedPort", gnr.translated_port)
            _sub_opt(g, "Protocol", gnr.protocol)
            _sub_opt(g, "IcmpSubType", gnr.icmp_sub_type)
        if rule.extra:
            _place_extra(r, rule.extra, NAT_RULE_ORDER)
    _sub_opt(el, "ExternalIp", service.external_ip)


def encode_service_configuration(config: EdgeGatewayServiceConfiguration) -> ET.Element:
    root = ET.Element(_q("EdgeGatewayServiceConfiguration"))
    if config.dhcp is not None:
        _emit_dhcp(root, config.dhcp)
    if config.firewall is not None:
        _emit_firewall(root, config.firewall)
    if config.nat is not None:
        _emit_nat(root, config.nat)
    # copies, so indenting the document leaves the caller's elements alone
    root.extend(copy.deepcopy(section) for section in config.passthrough)
    return root


def encode_service_configuration_string(config: EdgeGatewayServiceConfiguration) -> str:
    root = encode_service_configuration(config)
    ET.indent(root, space="    ")
    return XML_HEADER + ET.tostring(root, encoding="unicode")
