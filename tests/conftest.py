from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import pytest

from tor_munin.config import AgentConfig, ConnectionConfig


class FakeController:
    def __init__(self) -> None:
        self.info: dict[str, str] = {}
        self.network_statuses: list[Any] = []
        self.network_status: Any = None
        self.server_descriptor: Any = None
        self.auth_errors: list[Exception] = []
        self.auth_calls: list[str | None] = []
        self.opened = 0
        self.closed = 0

    def authenticate(self, password: str | None = None) -> None:
        self.auth_calls.append(password)
        if self.auth_errors:
            raise self.auth_errors.pop(0)

    def get_info(self, key: str, default: Any = None) -> Any:
        return self.info.get(key, default)

    def get_network_statuses(self) -> Iterator[Any]:
        yield from self.network_statuses

    def get_network_status(self, relay: str | None = None, default: Any = None) -> Any:
        return self.network_status if self.network_status is not None else default

    def get_server_descriptor(self, relay: str | None = None, default: Any = None) -> Any:
        return self.server_descriptor if self.server_descriptor is not None else default

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def controller() -> FakeController:
    return FakeController()


@pytest.fixture
def connector(controller: FakeController) -> Callable[[ConnectionConfig], Any]:
    @contextmanager
    def _connector(config: ConnectionConfig) -> Iterator[FakeController]:
        controller.opened += 1
        try:
            yield controller
        finally:
            controller.close()

    return _connector


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig()


def lookup_factory_for(mapping: dict[str, str | None]) -> Callable[..., Any]:
    @contextmanager
    def _factory(path: Any) -> Iterator[Callable[[str], str | None]]:
        yield mapping.get

    return _factory


@pytest.fixture
def make_lookup_factory() -> Callable[[dict[str, str | None]], Any]:
    return lookup_factory_for
