from __future__ import annotations

import enum
import importlib
import logging
from collections.abc import Callable
from types import ModuleType

from tor_munin.config import AgentConfig
from tor_munin.control import Connector, connect
from tor_munin.errors import AuthError, ConnectError, TorMuninError, UsageError
from tor_munin.exporter import SampleCollector, build_registry, render_config, render_exposition, render_values
from tor_munin.providers import MetricProvider, Variant, build_provider


LOGGER = logging.getLogger("tor_munin.service")
REQUIRED_MODULES: tuple[str, ...] = ("stem.control", "geoip2.database")


class Mode(enum.Enum):
    DESCRIBE = "config"
    COLLECT = "fetch"
    PROBE = "autoconf"
    LIST = "suggest"

    @classmethod
    def parse(cls, value: str | None) -> Mode:
        if value is None:
            return cls.COLLECT
        try:
            return cls(value)
        except ValueError as error:
            choices = ", ".join(mode.value for mode in cls)
            raise UsageError(f"unknown mode {value!r} (expected one of: {choices})") from error


class OutputFormat(enum.Enum):
    MUNIN = "munin"
    PROMETHEUS = "prometheus"


def probe_availability(
    config: AgentConfig,
    *,
    connector: Connector = connect,
    import_module: Callable[[str], ModuleType] = importlib.import_module,
) -> str:
    for module in REQUIRED_MODULES:
        try:
            import_module(module)
        except ImportError:
            return f"no (missing dependency: {module.split('.')[0]})"

    try:
        with connector(config.connection):
            pass
    except ConnectError as error:
        LOGGER.info("autoconf: %s", error)
        return "no (Connection failed)"
    except AuthError as error:
        return f"no (Authentication failed: {error})"
    except TorMuninError as error:
        return f"no ({error})"
    except Exception as error:  # pylint: disable=broad-exception-caught
        LOGGER.debug("autoconf failed unexpectedly", exc_info=True)
        return f"no (unexpected error: {error})"
    return "yes"


class Dispatcher:
    def __init__(
        self,
        config: AgentConfig,
        variant: Variant | None = None,
        *,
        connector: Connector = connect,
        output_format: OutputFormat = OutputFormat.MUNIN,
        provider_factory: Callable[..., MetricProvider] = build_provider,
    ) -> None:
        self.config = config
        self.variant = variant
        self.output_format = output_format
        self._connector = connector
        self._provider_factory = provider_factory

    def run(self, mode: Mode) -> list[str]:
        if mode is Mode.DESCRIBE:
            return self.describe()
        if mode is Mode.COLLECT:
            return self.collect()
        if mode is Mode.PROBE:
            return [probe_availability(self.config, connector=self._connector)]
        return self.list_variants()

    def _provider(self) -> MetricProvider:
        if self.variant is None:
            raise UsageError("no variant selected; invoke as tor_<variant> or pass --variant")
        return self._provider_factory(self.variant, self.config, connector=self._connector)

    def describe(self) -> list[str]:
        graph, labels = self._provider().describe()
        return render_config(graph, labels)

    def collect(self) -> list[str]:
        provider = self._provider()
        samples = provider.collect()
        LOGGER.debug("collected %d samples for %s", len(samples), provider.variant.value)
        if self.output_format is OutputFormat.PROMETHEUS:
            registry = build_registry(SampleCollector(provider.variant.value, provider.graph, samples))
            return render_exposition(registry)
        return render_values(samples)

    @staticmethod
    def list_variants() -> list[str]:
        return [variant.value for variant in Variant]
