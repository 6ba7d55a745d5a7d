from collections.abc import Generator
import xml.etree.ElementTree as ET

import pytest
import requests_mock
from requests import Session

from edgegateway import api
from edgegateway.models import VCLOUD_XMLNS, ClientConfig

GATEWAY_HREF = "https://vcd.example.com/api/admin/edgeGateway/gw-1"
ACTION_HREF = GATEWAY_HREF + "/action/configureServices"
TASK_HREF = "https://vcd.example.com/api/task/task-1"
UPLINK_A = "https://vcd.example.com/api/admin/network/ext-a"
UPLINK_B = "https://vcd.example.com/api/admin/network/ext-b"
INTERNAL_NET = "https://vcd.example.com/api/admin/network/int-1"
OTHER_NET = "https://vcd.example.com/api/admin/network/int-2"

INTERFACES = f"""
    <GatewayInterfaces>
      <GatewayInterface>
        <Name>internal</Name>
        <Network href="{INTERNAL_NET}" name="int-1"/>
        <InterfaceType>internal</InterfaceType>
      </GatewayInterface>
      <GatewayInterface>
        <Name>ext-a</Name>
        <Network href="{UPLINK_A}" name="ext-a"/>
        <InterfaceType>uplink</InterfaceType>
        <UseForDefaultRoute>true</UseForDefaultRoute>
      </GatewayInterface>
      <GatewayInterface>
        <Name>ext-b</Name>
        <Network href="{UPLINK_B}" name="ext-b"/>
        <InterfaceType>uplink</InterfaceType>
      </GatewayInterface>
    </GatewayInterfaces>"""

SERVICES = f"""<EdgeGatewayServiceConfiguration xmlns="{VCLOUD_XMLNS}">
  <GatewayDhcpService>
    <IsEnabled>true</IsEnabled>
    <Pool>
      <IsEnabled>true</IsEnabled>
      <Network href="{INTERNAL_NET}" name="int-1"/>
      <DefaultLeaseTime>3600</DefaultLeaseTime>
      <MaxLeaseTime>7200</MaxLeaseTime>
      <LowIpAddress>10.0.0.100</LowIpAddress>
      <HighIpAddress>10.0.0.200</HighIpAddress>
    </Pool>
    <Pool>
      <IsEnabled>true</IsEnabled>
      <Network href="{OTHER_NET}" name="int-2"/>
      <MaxLeaseTime>7200</MaxLeaseTime>
      <LowIpAddress>10.0.1.100</LowIpAddress>
      <HighIpAddress>10.0.1.200</HighIpAddress>
    </Pool>
  </GatewayDhcpService>
  <FirewallService>
    <IsEnabled>true</IsEnabled>
    <DefaultAction>drop</DefaultAction>
    <LogDefaultAction>false</LogDefaultAction>
    <FirewallRule>
      <Id>1</Id>
      <IsEnabled>true</IsEnabled>
      <MatchOnTranslate>false</MatchOnTranslate>
      <Description>ssh</Description>
      <Policy>allow</Policy>
      <Protocols><Tcp>true</Tcp></Protocols>
      <DestinationPortRange>22</DestinationPortRange>
      <DestinationIp>203.0.113.5</DestinationIp>
      <SourcePortRange>Any</SourcePortRange>
      <SourceIp>Any</SourceIp>
      <EnableLogging>false</EnableLogging>
    </FirewallRule>
  </FirewallService>
  <NatService>
    <IsEnabled>false</IsEnabled>
    <NatType>ipTranslation</NatType>
    <Policy>allowTraffic</Policy>
    <NatRule>
      <RuleType>DNAT</RuleType>
      <IsEnabled>true</IsEnabled>
      <Id>65537</Id>
      <GatewayNatRule>
        <Interface href="{UPLINK_B}" name="ext-b"/>
        <OriginalIp>203.0.113.5</OriginalIp>
        <OriginalPort>22</OriginalPort>
        <TranslatedIp>10.0.0.5</TranslatedIp>
        <TranslatedPort>22</TranslatedPort>
        <Protocol>tcp</Protocol>
      </GatewayNatRule>
    </NatRule>
  </NatService>
  <GatewayIpsecVpnService>
    <IsEnabled>true</IsEnabled>
    <Tunnel>
      <Name>branch</Name>
      <PeerIpAddress>198.51.100.7</PeerIpAddress>
    </Tunnel>
  </GatewayIpsecVpnService>
</EdgeGatewayServiceConfiguration>"""


VM_FIREWALL_RULE = """    <FirewallRule>
      <Id>2</Id>
      <IsEnabled>true</IsEnabled>
      <MatchOnTranslate>false</MatchOnTranslate>
      <Description>ping db</Description>
      <Policy>allow</Policy>
      <Protocols><Icmp>true</Icmp></Protocols>
      <IcmpSubType>echo-request</IcmpSubType>
      <Port>-1</Port>
      <DestinationVm>
        <VAppScopedVmId>7c4f1b2e-db</VAppScopedVmId>
        <VmNicId>0</VmNicId>
        <IpType>assigned</IpType>
      </DestinationVm>
      <SourcePort>-1</SourcePort>
      <SourceIp>Any</SourceIp>
      <EnableLogging>false</EnableLogging>
    </FirewallRule>
"""

BASIC_NAT_RULE = """    <NatRule>
      <Description>legacy</Description>
      <RuleType>OneToOneBasicRule</RuleType>
      <IsEnabled>true</IsEnabled>
      <Id>65538</Id>
      <OneToOneBasicRule>
        <MappingMode>manual</MappingMode>
        <ExternalIpAddress>203.0.113.20</ExternalIpAddress>
        <InternalIpAddress>10.0.0.20</InternalIpAddress>
      </OneToOneBasicRule>
    </NatRule>
"""

# services with rule fields the client does not model
EXTENDED_SERVICES = SERVICES.replace(
    "  </FirewallService>", VM_FIREWALL_RULE + "  </FirewallService>"
).replace("  </NatService>", BASIC_NAT_RULE + "  </NatService>")


def canonical(el: ET.Element) -> str:
    """Serializes `el` with insignificant whitespace dropped."""
    return ET.canonicalize(ET.tostring(el, encoding="unicode"), strip_text=True)


def gateway_xml(services: str = SERVICES) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<EdgeGateway xmlns="{VCLOUD_XMLNS}" href="{GATEWAY_HREF}" name="gw-1" status="1">
  <Configuration>{INTERFACES}
    {services}
  </Configuration>
</EdgeGateway>"""


def task_xml(status: str = "running", error: str | None = None) -> str:
    body = f'<Error message="{error}" majorErrorCode="500"/>' if error else ""
    return (
        f'<Task xmlns="{VCLOUD_XMLNS}" href="{TASK_HREF}" name="task" status="{status}"'
        f' operationName="networkConfigureEdgeGatewayServices">{body}</Task>'
    )


def error_xml(message: str, code: int = 400) -> str:
    return f'<Error xmlns="{VCLOUD_XMLNS}" message="{message}" majorErrorCode="{code}" minorErrorCode="BAD_REQUEST"/>'


def busy_xml() -> str:
    return error_xml(
        "The entity gw-1 (com.vmware.vcloud.entity.gateway:gw-1) is busy completing an operation."
    )


class FakeEdge:
    """Stateful stand-in for the gateway endpoints.

    Posted documents replace the sections they name and leave the rest alone,
    the way the real API treats partial service configurations.
    """

    def __init__(self, adapter: requests_mock.Adapter, services: str = SERVICES):
        self.services = ET.fromstring(services)
        self.posted: list[ET.Element] = []
        adapter.register_uri("GET", GATEWAY_HREF, text=self.get)
        adapter.register_uri("POST", ACTION_HREF, text=self.post)

    def get(self, request, context):
        context.status_code = 200
        return gateway_xml(ET.tostring(self.services, encoding="unicode"))

    def post(self, request, context):
        doc = ET.fromstring(request.text)
        self.posted.append(doc)
        for section in doc:
            old = self.services.find(section.tag)
            if old is None:
                self.services.append(section)
            else:
                index = list(self.services).index(old)
                self.services.remove(old)
                self.services.insert(index, section)
        context.status_code = 202
        return task_xml()

    def section(self, tag: str) -> ET.Element | None:
        return self.services.find(f"{{{VCLOUD_XMLNS}}}{tag}")


@pytest.fixture
def adapter() -> Generator[requests_mock.Adapter, None, None]:
    adapter = requests_mock.Adapter()
    with requests_mock.Mocker(adapter=adapter):
        yield adapter
    return


@pytest.fixture
def shared() -> ClientConfig:
    return ClientConfig(token="secret-token", retry_delay=3.0)


@pytest.fixture
def session(shared: ClientConfig) -> Session:
    return api.new_session(shared)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    calls: list[float] = []
    monkeypatch.setattr("edgegateway.api.time.sleep", calls.append)
    return calls
