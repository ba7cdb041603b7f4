from __future__ import annotations

import enum
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from tor_munin.errors import UsageError


DEFAULT_PORT = 9051
DEFAULT_SOCKET = "/var/run/tor/control"
DEFAULT_CACHE_FILE = "munin_tor_country_stats.json"
DEFAULT_MAX_COUNTRIES = 15
DEFAULT_GEOIP_PATH = "/usr/share/GeoIP/GeoLite2-Country.mmdb"


class ConnectMethod(enum.Enum):
    PORT = "port"
    SOCKET = "socket"


@dataclass(frozen=True)
class ConnectionConfig:
    method: ConnectMethod = ConnectMethod.PORT
    port: int = DEFAULT_PORT
    socket_path: str = DEFAULT_SOCKET
    password: str | None = None


@dataclass(frozen=True)
class AgentConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    cache_dir: Path | None = None
    cache_file_name: str = DEFAULT_CACHE_FILE
    max_countries: int = DEFAULT_MAX_COUNTRIES
    geoip_path: Path = Path(DEFAULT_GEOIP_PATH)

    @property
    def cache_path(self) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / self.cache_file_name


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise UsageError(f"invalid integer for {name}: {value!r}") from error


def _connect_method(environ: Mapping[str, str]) -> ConnectMethod:
    value = environ.get("connectmethod", ConnectMethod.PORT.value).strip().lower()
    try:
        return ConnectMethod(value)
    except ValueError as error:
        choices = ", ".join(method.value for method in ConnectMethod)
        raise UsageError(f"unsupported connectmethod {value!r} (expected one of: {choices})") from error


def load_config(environ: Mapping[str, str] | None = None) -> AgentConfig:
    if environ is None:
        environ = os.environ

    connection = ConnectionConfig(
        method=_connect_method(environ),
        port=_int_env(environ, "port", DEFAULT_PORT),
        socket_path=environ.get("socket", DEFAULT_SOCKET),
        password=environ.get("torpassword"),
    )

    cache_dir = environ.get("torcachedir", environ.get("MUNIN_PLUGSTATE"))
    max_countries = _int_env(environ, "tormaxcountries", DEFAULT_MAX_COUNTRIES)
    if max_countries < 1:
        raise UsageError(f"tormaxcountries must be positive, got {max_countries}")

    return AgentConfig(
        connection=connection,
        cache_dir=Path(cache_dir) if cache_dir else None,
        cache_file_name=environ.get("torcachefile", DEFAULT_CACHE_FILE),
        max_countries=max_countries,
        geoip_path=Path(environ.get("torgeoippath", DEFAULT_GEOIP_PATH)),
    )
