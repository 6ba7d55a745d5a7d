import copy
import logging

from requests import Session

from . import api, rules
from .errors import EdgeGatewayError, PreconditionError
from .models import (
    ClientConfig,
    EdgeGatewayRecord,
    EdgeGatewayServiceConfiguration,
    FirewallRule,
    FirewallService,
    FullConfiguration,
    NatService,
    PartialConfiguration,
    Reference,
    Task,
)

logger = logging.getLogger(__name__)


class EdgeGateway:
    """Reads and reconfigures the network services of one edge gateway.

    `record` is the last configuration fetched from the server. It is a
    snapshot: operations that rewrite existing rules refresh it first, and
    instances must not be shared between concurrent callers.
    """

    def __init__(self, s: Session, shared: ClientConfig, record: EdgeGatewayRecord):
        self.s = s
        self.shared = shared
        self.record = record

    @classmethod
    def from_href(cls, s: Session, shared: ClientConfig, href: str) -> "EdgeGateway":
        gateway = cls(s, shared, EdgeGatewayRecord(href=href))
        gateway.refresh()
        return gateway

    @property
    def href(self) -> str:
        if not self.record.href:
            raise PreconditionError("edge gateway has no href, nothing to refresh or reconfigure")
        return self.record.href

    @property
    def services(self) -> EdgeGatewayServiceConfiguration:
        return self.record.configuration.services

    def refresh(self):
        href = self.href
        # replaced wholesale, never merged into the old snapshot
        record = api.get_edge_gateway(self.s, self.shared, href)
        if not record.href:
            record.href = href
        self.record = record

    def uplink(self) -> Reference | None:
        return rules.find_uplink(self.record.configuration.interfaces)

    def _uplink_href(self, network: Reference | None) -> str | None:
        if network is not None:
            return network.href
        uplink = self.uplink()
        return uplink.href if uplink is not None else None

    def _submit(self, request, retry: bool = False) -> Task:
        return api.post_configuration(self.s, self.shared, self.href, request, retry=retry)

    def add_dhcp_pool(self, network: Reference, pools: list[dict]) -> Task:
        service = rules.merge_dhcp_pools(self.services.dhcp, network, pools)
        return self._submit(PartialConfiguration(dhcp=service), retry=True)

    def add_nat_mapping(self, nat_type: str, external_ip: str, internal_ip: str, port: str) -> Task:
        return self.add_nat_port_mapping(nat_type, external_ip, port, internal_ip, port)

    def add_nat_port_mapping(
        self,
        nat_type: str,
        external_ip: str,
        external_port: str,
        internal_ip: str,
        internal_port: str,
    ) -> Task:
        return self.add_nat_port_mapping_with_uplink(
            None, nat_type, external_ip, external_port, internal_ip, internal_port
        )

    def add_nat_port_mapping_with_uplink(
        self,
        network: Reference | None,
        nat_type: str,
        external_ip: str,
        external_port: str,
        internal_ip: str,
        internal_port: str,
    ) -> Task:
        uplink_href = self._uplink_href(network)
        rule = rules.port_mapping_rule(
            nat_type, external_ip, external_port, internal_ip, internal_port, uplink_href
        )
        service = rules.add_nat_rule(self.services.nat, rule)
        self.services.nat = service
        return self._submit(PartialConfiguration(nat=service))

    def remove_nat_mapping(self, nat_type: str, external_ip: str, internal_ip: str, port: str) -> Task:
        return self.remove_nat_port_mapping(nat_type, external_ip, port, internal_ip, port)

    def remove_nat_port_mapping(
        self,
        nat_type: str,
        external_ip: str,
        external_port: str,
        internal_ip: str,
        internal_port: str,
    ) -> Task:
        return self.remove_nat_port_mapping_with_uplink(
            None, nat_type, external_ip, external_port, internal_ip, internal_port
        )

    def remove_nat_port_mapping_with_uplink(
        self,
        network: Reference | None,
        nat_type: str,
        external_ip: str,
        external_port: str,
        internal_ip: str,
        internal_port: str,
    ) -> Task:
        # the internal endpoint is accepted for symmetry with the add path but
        # rules are matched on their original endpoint only
        if self.services.nat is None:
            raise PreconditionError("edge gateway has no NAT service to remove rules from")
        uplink_href = self._uplink_href(network)
        service = rules.remove_nat_rules(
            self.services.nat, nat_type, external_ip, external_port, uplink_href
        )
        self.services.nat = service
        return self._submit(PartialConfiguration(nat=service))

    def create_firewall_rules(self, default_action: str, firewall_rules: list[FirewallRule]) -> Task:
        self.refresh()
        service = FirewallService(
            is_enabled=True,
            default_action=default_action,
            log_default_action=True,
            rules=list(firewall_rules),
        )
        return self._submit(PartialConfiguration(firewall=service), retry=True)

    def create_1to1_mapping(self, internal: str, external: str, description: str) -> Task:
        self.refresh()
        uplink_href = self._uplink_href(None)

        config = copy.deepcopy(self.services)
        if config.nat is None:
            config.nat = NatService(is_enabled=True)
        if config.firewall is None:
            config.firewall = FirewallService(is_enabled=True)

        config.nat.rules.extend(
            rules.one_to_one_nat_rules(internal, external, description, uplink_href)
        )
        config.firewall.rules.extend(
            rules.one_to_one_firewall_rules(internal, external, description)
        )
        return self._submit(FullConfiguration(config))

    def remove_1to1_mapping(self, internal: str, external: str) -> Task:
        self.refresh()
        uplink_href = self._uplink_href(None)

        config = copy.deepcopy(self.services)
        config.nat = rules.remove_one_to_one_nat(config.nat, internal, external, uplink_href)
        config.firewall = rules.remove_one_to_one_firewall(config.firewall, internal, external)
        # the API rejects the document when NAT is left disabled
        config.nat.is_enabled = True
        return self._submit(FullConfiguration(config))

    def add_ipsec_vpn(self, config: EdgeGatewayServiceConfiguration) -> Task:
        try:
            self.refresh()
        except EdgeGatewayError as e:
            logger.warning("refresh before VPN configuration failed: %s", e)
        return self._submit(FullConfiguration(config))
