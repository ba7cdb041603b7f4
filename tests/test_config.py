from pathlib import Path

import pytest

from tor_munin.config import DEFAULT_CACHE_FILE, ConnectMethod, load_config
from tor_munin.errors import UsageError


def test_load_config_defaults() -> None:
    config = load_config({})
    assert config.connection.method is ConnectMethod.PORT
    assert config.connection.port == 9051
    assert config.connection.socket_path == "/var/run/tor/control"
    assert config.connection.password is None
    assert config.cache_dir is None
    assert config.cache_path is None
    assert config.max_countries == 15
    assert config.geoip_path == Path("/usr/share/GeoIP/GeoLite2-Country.mmdb")


def test_load_config_reads_munin_environment() -> None:
    config = load_config(
        {
            "connectmethod": "socket",
            "socket": "/run/tor/control",
            "port": "9151",
            "torpassword": "s3cr3t",
            "torcachedir": "/var/lib/munin-node/plugin-state/nobody",
            "torcachefile": "countries.json",
            "tormaxcountries": "5",
            "torgeoippath": "/srv/geo.mmdb",
        }
    )
    assert config.connection.method is ConnectMethod.SOCKET
    assert config.connection.socket_path == "/run/tor/control"
    assert config.connection.port == 9151
    assert config.connection.password == "s3cr3t"
    assert config.cache_path == Path("/var/lib/munin-node/plugin-state/nobody/countries.json")
    assert config.max_countries == 5
    assert config.geoip_path == Path("/srv/geo.mmdb")


def test_load_config_falls_back_to_munin_plugstate(tmp_path: Path) -> None:
    config = load_config({"MUNIN_PLUGSTATE": str(tmp_path)})
    assert config.cache_path == tmp_path / DEFAULT_CACHE_FILE


def test_load_config_rejects_unknown_connect_method() -> None:
    with pytest.raises(UsageError, match="unsupported connectmethod"):
        load_config({"connectmethod": "carrier-pigeon"})


def test_load_config_rejects_non_numeric_port() -> None:
    with pytest.raises(UsageError, match="port"):
        load_config({"port": "ninety"})


def test_load_config_rejects_non_positive_max_countries() -> None:
    with pytest.raises(UsageError, match="tormaxcountries"):
        load_config({"tormaxcountries": "0"})
