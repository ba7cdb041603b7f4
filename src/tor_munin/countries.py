from __future__ import annotations

import json
import logging
import re
from collections import Counter
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

from tor_munin.config import AgentConfig
from tor_munin.control import Connector, connect, iter_router_addresses
from tor_munin.errors import CapabilityMissing, TorMuninError


LOGGER = logging.getLogger("tor_munin.countries")
UNKNOWN_COUNTRY = "Unknown"
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")
_QUALIFIER = re.compile(r"\s*[,(].*$")

CountryLookup = Callable[[str], str | None]
CountrySnapshot = list[tuple[str, int]]
LookupFactory = Callable[[Path], AbstractContextManager[CountryLookup]]


def simplify_country_name(name: str) -> str:
    """Reduce a GeoIP country name to a single munin-safe token.

    "Korea, Republic of" and "Iran (Islamic Republic of)" lose their
    qualifier, remaining separators collapse into underscores, so
    "United States" becomes "United_States".
    """
    base = _QUALIFIER.sub("", name)
    return _NON_ALNUM.sub("_", base.strip()).strip("_") or UNKNOWN_COUNTRY


def aggregate_countries(addresses: Iterable[str], lookup: CountryLookup) -> Counter[str]:
    counts: Counter[str] = Counter()
    for address in addresses:
        name = lookup(address)
        if not name:
            LOGGER.debug("no country known for %s", address)
            counts[UNKNOWN_COUNTRY] += 1
            continue
        counts[simplify_country_name(name)] += 1
    return counts


def top_countries(counts: Counter[str], maximum: int) -> CountrySnapshot:
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return ordered[:maximum]


def parse_snapshot(payload: Any) -> CountrySnapshot | None:
    if not isinstance(payload, list):
        return None
    snapshot: CountrySnapshot = []
    for entry in payload:
        if not isinstance(entry, list) or len(entry) != 2:
            return None
        name, count = entry
        if not isinstance(name, str) or not name or simplify_country_name(name) != name:
            return None
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            return None
        snapshot.append((name, count))
    return snapshot


class GeoIPLookup:
    def __init__(self, database_path: Path) -> None:
        try:
            import geoip2.database
            import geoip2.errors
        except ImportError as error:
            raise CapabilityMissing("geoip2") from error

        self._not_found = geoip2.errors.AddressNotFoundError
        try:
            self._reader = geoip2.database.Reader(str(database_path))
        except (OSError, ValueError, RuntimeError) as error:
            raise CapabilityMissing(f"GeoIP database {database_path} ({error})") from error

    def __call__(self, address: str) -> str | None:
        try:
            response = self._reader.country(address)
        except (self._not_found, ValueError):
            return None
        return response.country.name

    def close(self) -> None:
        self._reader.close()

    def __enter__(self) -> GeoIPLookup:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CountryCache:
    def __init__(
        self,
        config: AgentConfig,
        *,
        connector: Connector = connect,
        lookup_factory: LookupFactory = GeoIPLookup,
    ) -> None:
        self._config = config
        self._connector = connector
        self._lookup_factory = lookup_factory

    @property
    def path(self) -> Path | None:
        return self._config.cache_path

    def compute(self) -> CountrySnapshot:
        with self._lookup_factory(self._config.geoip_path) as lookup:
            with self._connector(self._config.connection) as controller:
                counts = aggregate_countries(iter_router_addresses(controller), lookup)
        LOGGER.debug("aggregated %d relays into %d countries", sum(counts.values()), len(counts))
        return top_countries(counts, self._config.max_countries)

    def refresh(self) -> CountrySnapshot:
        snapshot = self.compute()
        self.save(snapshot)
        return snapshot

    def current(self) -> CountrySnapshot:
        snapshot = self.load()
        if snapshot is not None:
            return snapshot
        return self.compute()

    def load(self) -> CountrySnapshot | None:
        path = self.path
        if path is None:
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            LOGGER.info("country cache %s unusable, recomputing: %s", path, error)
            return None
        snapshot = parse_snapshot(payload)
        if snapshot is None:
            LOGGER.info("country cache %s is malformed, recomputing", path)
            return None
        if snapshot != top_countries(Counter(dict(snapshot)), self._config.max_countries):
            LOGGER.info("country cache %s does not match the current settings, recomputing", path)
            return None
        return snapshot

    def save(self, snapshot: CountrySnapshot) -> None:
        path = self.path
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps([[name, count] for name, count in snapshot]), encoding="utf-8")
        except OSError as error:
            raise TorMuninError(f"unable to write country cache {path}: {error}") from error
        LOGGER.debug("wrote %d countries to %s", len(snapshot), path)
