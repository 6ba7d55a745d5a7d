from dataclasses import dataclass, field
import xml.etree.ElementTree as ET


VCLOUD_XMLNS = "http://www.vmware.com/vcloud/v1.5"


@dataclass
class ClientConfig:
    token: str
    api_version: str = "5.6"
    debug: bool = False
    # None retries forever
    retry_attempts: int | None = 20
    retry_delay: float = 3.0
    verify_tls: bool = True


@dataclass
class Reference:
    href: str | None = None
    name: str | None = None
    type: str | None = None


@dataclass
class GatewayInterface:
    name: str = ""
    network: Reference | None = None
    interface_type: str = ""
    use_for_default_route: bool = False


@dataclass
class DhcpPoolService:
    network: Reference
    low_ip_address: str
    high_ip_address: str
    is_enabled: bool = True
    default_lease_time: int | None = None
    max_lease_time: int | None = None


@dataclass
class GatewayDhcpService:
    is_enabled: bool = False
    pools: list[DhcpPoolService] = field(default_factory=list)


@dataclass
class GatewayNatRule:
    interface: Reference | None = None
    original_ip: str | None = ""
    original_port: str | None = None
    translated_ip: str | None = ""
    translated_port: str | None = None
    protocol: str | None = None
    icmp_sub_type: str | None = None


@dataclass
class NatRule:
    rule_type: str
    # None for rule bodies other than GatewayNatRule; those stay in `extra`
    gateway_nat_rule: GatewayNatRule | None = field(default_factory=GatewayNatRule)
    is_enabled: bool = True
    description: str | None = None
    id: str | None = None
    # child elements the codec does not model, written back as received
    extra: list[ET.Element] = field(default_factory=list, compare=False)


@dataclass
class NatService:
    is_enabled: bool = False
    nat_type: str | None = None
    policy: str | None = None
    rules: list[NatRule] = field(default_factory=list)
    external_ip: str | None = None


@dataclass
class FirewallRuleProtocols:
    icmp: bool = False
    any: bool = False
    tcp: bool = False
    udp: bool = False
    other: str | None = None


@dataclass
class FirewallRule:
    policy: str = "allow"
    protocols: FirewallRuleProtocols | None = None
    destination_port_range: str | None = "Any"
    destination_ip: str | None = "Any"
    source_port_range: str | None = "Any"
    source_ip: str | None = "Any"
    is_enabled: bool = True
    match_on_translate: bool = False
    enable_logging: bool = False
    description: str | None = None
    id: str | None = None
    direction: str | None = None
    icmp_sub_type: str | None = None
    port: int | None = None
    source_port: int | None = None
    # DestinationVm, SourceVm and anything else the codec does not model
    extra: list[ET.Element] = field(default_factory=list, compare=False)


@dataclass
class FirewallService:
    is_enabled: bool = False
    default_action: str | None = None
    log_default_action: bool = False
    rules: list[FirewallRule] = field(default_factory=list)


@dataclass
class EdgeGatewayServiceConfiguration:
    dhcp: GatewayDhcpService | None = None
    firewall: FirewallService | None = None
    nat: NatService | None = None
    # sections this client does not model (IPsec VPN, static routing,
    # load balancer) are carried through untouched
    passthrough: list[ET.Element] = field(default_factory=list)


@dataclass
class EdgeGatewayConfiguration:
    interfaces: list[GatewayInterface] = field(default_factory=list)
    services: EdgeGatewayServiceConfiguration = field(
        default_factory=EdgeGatewayServiceConfiguration
    )


@dataclass
class EdgeGatewayRecord:
    href: str | None = None
    name: str | None = None
    status: str | None = None
    configuration: EdgeGatewayConfiguration = field(
        default_factory=EdgeGatewayConfiguration
    )


@dataclass
class Task:
    href: str
    status: str = "queued"
    name: str | None = None
    operation: str | None = None
    operation_name: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    error_message: str | None = None

    @property
    def done(self) -> bool:
        return self.status in ("success", "error", "aborted")


@dataclass
class PartialConfiguration:
    """Names a single service section; the server leaves the others alone."""

    dhcp: GatewayDhcpService | None = None
    nat: NatService | None = None
    firewall: FirewallService | None = None

    def __post_init__(self):
        given = [s for s in (self.dhcp, self.nat, self.firewall) if s is not None]
        if len(given) != 1:
            raise ValueError(
                f"partial configuration needs exactly one section, got {len(given)}"
            )

    def document(self) -> EdgeGatewayServiceConfiguration:
        return EdgeGatewayServiceConfiguration(
            dhcp=self.dhcp, firewall=self.firewall, nat=self.nat
        )


@dataclass
class FullConfiguration:
    """Replaces every service section of the gateway."""

    config: EdgeGatewayServiceConfiguration

    def document(self) -> EdgeGatewayServiceConfiguration:
        return self.config


ConfigurationRequest = PartialConfiguration | FullConfiguration
