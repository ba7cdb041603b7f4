from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, ClassVar

from tor_munin.config import AgentConfig
from tor_munin.control import Connector, connect, query_info
from tor_munin.countries import CountryCache
from tor_munin.errors import ProtocolError


LOGGER = logging.getLogger("tor_munin.providers")

OR_CONNECTION_STATES: tuple[str, ...] = ("new", "launched", "connected", "failed", "closed")
RELAY_FLAGS: tuple[str, ...] = (
    "Authority",
    "BadDirectory",
    "BadExit",
    "Exit",
    "Fast",
    "Guard",
    "HSDir",
    "MiddleOnly",
    "Named",
    "NoEdConsensus",
    "Running",
    "Stable",
    "StaleDesc",
    "Unnamed",
    "V2Dir",
    "Valid",
)


class Variant(enum.Enum):
    BANDWIDTH = "bandwidth"
    CONNECTIONS = "connections"
    COUNTRIES = "countries"
    DORMANT = "dormant"
    FLAGS = "flags"
    ROUTERS = "routers"
    TRAFFIC = "traffic"


class Kind(enum.Enum):
    GAUGE = "GAUGE"
    DERIVE = "DERIVE"


@dataclass(frozen=True)
class GraphDescriptor:
    title: str
    vertical_label: str
    args: str
    info: str
    category: str = "tor"


@dataclass(frozen=True)
class LabelSpec:
    name: str
    min_value: int = 0
    max_value: int | None = None
    kind: Kind = Kind.GAUGE


@dataclass(frozen=True)
class MetricSample:
    label: str
    value: int | float
    kind: Kind = Kind.GAUGE


def _parse_number(key: str, raw: str) -> int | float:
    value = raw.strip()
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError as error:
        raise ProtocolError(f"non-numeric response for {key}: {raw!r}") from error


class MetricProvider(ABC):
    """One munin graph backed by the tor control port.

    ``describe`` and ``collect`` must agree on label names: every label
    declared by ``describe`` gets exactly one sample from ``collect``.
    """

    variant: ClassVar[Variant]
    graph: ClassVar[GraphDescriptor]
    labels: ClassVar[tuple[LabelSpec, ...]] = ()

    def __init__(self, config: AgentConfig, *, connector: Connector = connect) -> None:
        self.config = config
        self._connector = connector

    def session(self) -> AbstractContextManager[Any]:
        return self._connector(self.config.connection)

    def describe(self) -> tuple[GraphDescriptor, list[LabelSpec]]:
        return self.graph, list(self.labels)

    @abstractmethod
    def collect(self) -> list[MetricSample]:
        raise NotImplementedError


class BandwidthProvider(MetricProvider):
    variant = Variant.BANDWIDTH
    graph = GraphDescriptor(
        title="Observed bandwidth",
        vertical_label="bytes/s",
        args="-l 0 --base 1000",
        info="estimated capacity based upon usage in the last 24 hours",
    )
    labels = (LabelSpec("bandwidth"),)

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            descriptor = controller.get_server_descriptor(default=None)
        if descriptor is None or descriptor.observed_bandwidth is None:
            raise ProtocolError("no server descriptor available for this relay")
        return [MetricSample("bandwidth", int(descriptor.observed_bandwidth))]


class ConnectionsProvider(MetricProvider):
    variant = Variant.CONNECTIONS
    graph = GraphDescriptor(
        title="Connections",
        vertical_label="connections",
        args="-l 0 --base 1000",
        info="OR connections by state",
    )
    labels = tuple(LabelSpec(state) for state in OR_CONNECTION_STATES)

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            status = query_info(controller, "orconn-status")

        tally = dict.fromkeys(OR_CONNECTION_STATES, 0)
        for line in status.splitlines():
            fields = line.split()
            if len(fields) < 2:
                continue
            state = fields[1].lower()
            if state not in tally:
                LOGGER.debug("ignoring unknown OR connection state %r", fields[1])
                continue
            tally[state] += 1
        return [MetricSample(state, count) for state, count in tally.items()]


class CountriesProvider(MetricProvider):
    variant = Variant.COUNTRIES
    graph = GraphDescriptor(
        title="Countries",
        vertical_label="relays",
        args="-l 0 --base 1000",
        info="Number of relays per country in the consensus",
    )

    def __init__(
        self,
        config: AgentConfig,
        *,
        connector: Connector = connect,
        cache: CountryCache | None = None,
    ) -> None:
        super().__init__(config, connector=connector)
        if cache is None:
            cache = CountryCache(config, connector=connector)
        self.cache = cache

    def describe(self) -> tuple[GraphDescriptor, list[LabelSpec]]:
        snapshot = self.cache.refresh()
        return self.graph, [LabelSpec(name) for name, _ in snapshot]

    def collect(self) -> list[MetricSample]:
        return [MetricSample(name, count) for name, count in self.cache.current()]


class DormantProvider(MetricProvider):
    variant = Variant.DORMANT
    graph = GraphDescriptor(
        title="Dormant",
        vertical_label="dormant",
        args="-l 0 --upper-limit 1 --base 1000",
        info="Is Tor not building circuits because it is idle?",
    )
    labels = (LabelSpec("dormant", max_value=1),)

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            dormant = query_info(controller, "dormant")
        return [MetricSample("dormant", _parse_number("dormant", dormant))]


class FlagsProvider(MetricProvider):
    variant = Variant.FLAGS
    graph = GraphDescriptor(
        title="Relay flags",
        vertical_label="flags",
        args="-l 0 --base 1000",
        info="Flags active for relay",
    )
    labels = tuple(LabelSpec(flag.lower(), max_value=1) for flag in RELAY_FLAGS)

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            entry = controller.get_network_status(default=None)
        if entry is None:
            raise ProtocolError("no network status entry available for this relay")

        present = {flag.lower() for flag in entry.flags}
        return [MetricSample(flag.lower(), 1 if flag.lower() in present else 0) for flag in RELAY_FLAGS]


class RoutersProvider(MetricProvider):
    variant = Variant.ROUTERS
    graph = GraphDescriptor(
        title="Routers",
        vertical_label="routers",
        args="-l 0",
        info="known Tor onion routers",
    )
    labels = (LabelSpec("routers"),)

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            listing = query_info(controller, "ns/all")
        # each router status entry starts with an "r" line
        count = sum(1 for line in listing.splitlines() if line.startswith("r "))
        return [MetricSample("routers", count)]


class TrafficProvider(MetricProvider):
    variant = Variant.TRAFFIC
    graph = GraphDescriptor(
        title="Traffic",
        vertical_label="bytes/s",
        args="-l 0 --base 1024",
        info="bytes read/written",
    )
    labels = (
        LabelSpec("read", kind=Kind.DERIVE),
        LabelSpec("written", kind=Kind.DERIVE),
    )

    def collect(self) -> list[MetricSample]:
        with self.session() as controller:
            read = query_info(controller, "traffic/read")
            written = query_info(controller, "traffic/written")
        return [
            MetricSample("read", _parse_number("traffic/read", read), Kind.DERIVE),
            MetricSample("written", _parse_number("traffic/written", written), Kind.DERIVE),
        ]


PROVIDERS: dict[Variant, type[MetricProvider]] = {
    provider.variant: provider
    for provider in (
        BandwidthProvider,
        ConnectionsProvider,
        CountriesProvider,
        DormantProvider,
        FlagsProvider,
        RoutersProvider,
        TrafficProvider,
    )
}


def build_provider(variant: Variant, config: AgentConfig, *, connector: Connector = connect) -> MetricProvider:
    return PROVIDERS[variant](config, connector=connector)
