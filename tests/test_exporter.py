from prometheus_client import generate_latest

from tor_munin.exporter import SampleCollector, build_registry, format_value, render_config, render_values
from tor_munin.providers import DormantProvider, Kind, MetricSample, TrafficProvider


def test_render_config_for_bounded_gauge(config) -> None:
    graph, labels = DormantProvider(config).describe()
    assert render_config(graph, labels) == [
        "graph_title Dormant",
        "graph_args -l 0 --upper-limit 1 --base 1000",
        "graph_vlabel dormant",
        "graph_category tor",
        "graph_info Is Tor not building circuits because it is idle?",
        "dormant.label dormant",
        "dormant.min 0",
        "dormant.max 1",
        "dormant.type GAUGE",
    ]


def test_render_config_for_derive_counters(config) -> None:
    graph, labels = TrafficProvider(config).describe()
    lines = render_config(graph, labels)
    assert "read.type DERIVE" in lines
    assert "written.type DERIVE" in lines
    assert not any(line.endswith(".max") or ".max " in line for line in lines)


def test_render_values_keeps_order_and_integers() -> None:
    samples = [
        MetricSample("read", 12345, Kind.DERIVE),
        MetricSample("written", 6789, Kind.DERIVE),
    ]
    assert render_values(samples) == ["read.value 12345", "written.value 6789"]


def test_render_values_keeps_uint64_counters_exact() -> None:
    samples = [
        MetricSample("read", 18014398509481985, Kind.DERIVE),
        MetricSample("written", 2**64 - 1, Kind.DERIVE),
    ]
    assert render_values(samples) == ["read.value 18014398509481985", "written.value 18446744073709551615"]


def test_render_values_for_gauges() -> None:
    samples = [MetricSample(state, index) for index, state in enumerate(["new", "connected"])]
    assert render_values(samples) == ["new.value 0", "connected.value 1"]


def test_prometheus_exposition_of_samples() -> None:
    samples = [
        MetricSample("read", 12345, Kind.DERIVE),
        MetricSample("written", 6789, Kind.DERIVE),
    ]
    registry = build_registry(SampleCollector("traffic", TrafficProvider.graph, samples))

    rendered = generate_latest(registry).decode("utf-8")
    assert "# TYPE tor_traffic counter" in rendered
    assert 'tor_traffic_total{field="read"} 12345.0' in rendered
    assert 'tor_traffic_total{field="written"} 6789.0' in rendered


def test_format_value() -> None:
    assert format_value(0) == "0"
    assert format_value(9007199254740993) == "9007199254740993"
    assert format_value(0.0) == "0"
    assert format_value(524288.0) == "524288"
    assert format_value(0.5) == "0.5"
