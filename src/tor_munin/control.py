from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any

from tor_munin.config import ConnectionConfig, ConnectMethod
from tor_munin.errors import AuthError, AuthFailure, CapabilityMissing, ConnectError, ProtocolError


LOGGER = logging.getLogger("tor_munin.control")

Connector = Callable[[ConnectionConfig], AbstractContextManager[Any]]


def _controller_class() -> Any:
    try:
        from stem.control import Controller
    except ImportError as error:
        raise CapabilityMissing("stem") from error
    return Controller


def describe_target(config: ConnectionConfig) -> str:
    if config.method is ConnectMethod.SOCKET:
        return f"socket {config.socket_path}"
    return f"port {config.port}"


def open_controller(config: ConnectionConfig) -> Any:
    controller_class = _controller_class()
    import stem

    LOGGER.debug("opening control connection via %s", describe_target(config))
    try:
        if config.method is ConnectMethod.SOCKET:
            return controller_class.from_socket_file(path=config.socket_path)
        return controller_class.from_port(port=config.port)
    except stem.SocketError as error:
        raise ConnectError(f"connection via {describe_target(config)} failed: {error}") from error


def authenticate(controller: Any, password: str | None) -> None:
    import stem
    from stem.connection import AuthenticationFailure, MissingPassword, PasswordAuthFailed

    try:
        controller.authenticate()
        return
    except MissingPassword:
        LOGGER.debug("daemon requires a password")
    except AuthenticationFailure as error:
        raise AuthError(AuthFailure.MISSING, str(error)) from error
    except stem.SocketError as error:
        raise ConnectError(f"connection lost during authentication: {error}") from error

    if not password:
        raise AuthError(AuthFailure.NOT_CONFIGURED)

    try:
        controller.authenticate(password=password)
    except PasswordAuthFailed as error:
        raise AuthError(AuthFailure.REJECTED, str(error)) from error
    except AuthenticationFailure as error:
        raise AuthError(AuthFailure.MISSING, str(error)) from error
    except stem.SocketError as error:
        raise ConnectError(f"connection lost during authentication: {error}") from error


@contextmanager
def connect(config: ConnectionConfig) -> Iterator[Any]:
    controller = open_controller(config)
    try:
        authenticate(controller, config.password)
        yield controller
    finally:
        controller.close()
        LOGGER.debug("control connection closed")


def query_info(controller: Any, key: str) -> str:
    value = controller.get_info(key, None)
    if value is None:
        raise ProtocolError(f"no response from daemon for GETINFO {key}")
    return value


def iter_router_addresses(controller: Any) -> Iterator[str]:
    import stem

    try:
        for entry in controller.get_network_statuses():
            yield entry.address
    except stem.ControllerError as error:
        raise ProtocolError(f"unable to list network statuses: {error}") from error
