from __future__ import annotations

import enum


class TorMuninError(Exception):
    exit_code = 1


class UsageError(TorMuninError):
    exit_code = 2


class CapabilityMissing(TorMuninError):
    exit_code = 3

    def __init__(self, module: str) -> None:
        super().__init__(f"missing dependency: {module}")
        self.module = module


class ConnectError(TorMuninError):
    exit_code = 4


class AuthFailure(enum.Enum):
    MISSING = "authentication information missing"
    NOT_CONFIGURED = "password required but torpassword is not configured"
    REJECTED = "password rejected"


class AuthError(TorMuninError):
    exit_code = 5

    def __init__(self, reason: AuthFailure, detail: str | None = None) -> None:
        message = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(message)
        self.reason = reason


class ProtocolError(TorMuninError):
    exit_code = 6
