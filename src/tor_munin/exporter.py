from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from tor_munin.providers import GraphDescriptor, Kind, LabelSpec, MetricSample


FIELD_LABEL = "field"


def format_value(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_config(graph: GraphDescriptor, labels: Sequence[LabelSpec]) -> list[str]:
    lines = [
        f"graph_title {graph.title}",
        f"graph_args {graph.args}",
        f"graph_vlabel {graph.vertical_label}",
        f"graph_category {graph.category}",
        f"graph_info {graph.info}",
    ]
    for label in labels:
        lines.append(f"{label.name}.label {label.name}")
        lines.append(f"{label.name}.min {label.min_value}")
        if label.max_value is not None:
            lines.append(f"{label.name}.max {label.max_value}")
        lines.append(f"{label.name}.type {label.kind.value}")
    return lines


class SampleCollector(Collector):
    """Expose one provider's samples as prometheus metric families.

    GAUGE samples become a gauge family, DERIVE samples a counter family,
    each sample keyed by the munin field name.
    """

    def __init__(
        self,
        variant: str,
        graph: GraphDescriptor,
        samples: Iterable[MetricSample],
    ) -> None:
        self._name = f"tor_{variant}"
        self._graph = graph
        self._samples = list(samples)

    def collect(self) -> Iterator[Metric]:
        gauge = GaugeMetricFamily(self._name, self._graph.info, labels=[FIELD_LABEL])
        counter = CounterMetricFamily(self._name, self._graph.info, labels=[FIELD_LABEL])
        for sample in self._samples:
            if sample.kind is Kind.DERIVE:
                counter.add_metric([sample.label], sample.value)
            else:
                gauge.add_metric([sample.label], sample.value)
        for family in (gauge, counter):
            if family.samples:
                yield family


def build_registry(collector: SampleCollector) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(collector)
    return registry


def render_values(samples: Iterable[MetricSample]) -> list[str]:
    return [f"{sample.label}.value {format_value(sample.value)}" for sample in samples]


def render_exposition(registry: CollectorRegistry) -> list[str]:
    return generate_latest(registry).decode("utf-8").splitlines()
