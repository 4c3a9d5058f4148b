from __future__ import annotations

from dataclasses import dataclass


class RegistryError(Exception):
    """Base class for registry failures that terminate an operation."""


class ConfigurationError(RegistryError):
    """Neither a registry name nor a root override is configured."""


class SchemaError(RegistryError):
    """A manifest or entry carries an unrecognized schema or shape."""


class RegistryNotLoadedError(RegistryError):
    """An operation needs a loaded registry and none is available."""


@dataclass(frozen=True)
class GatewayAttempt:
    origin: str
    url: str
    error: str
    status: int | None = None
    timed_out: bool = False


class GatewayError(RegistryError):
    """Every gateway origin failed for a single fetch."""

    def __init__(
        self,
        message: str,
        protocol: str,
        hash: str,
        attempts: tuple[GatewayAttempt, ...],
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.protocol = protocol
        self.hash = hash
        self.path = path
        self.attempts = attempts

    @property
    def attempted_origins(self) -> tuple[str, ...]:
        return tuple(attempt.origin for attempt in self.attempts)

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(attempt.error for attempt in self.attempts)

    @property
    def looks_unpublished(self) -> bool:
        # 404/410 everywhere, or nothing answered at all, reads as "not published yet".
        if not self.attempts:
            return False
        for attempt in self.attempts:
            if attempt.timed_out:
                return False
            if attempt.status is not None and attempt.status not in (404, 410):
                return False
        return True
