"""Name resolution: human-readable registry name to content reference.

Two strategies exist and a deployment picks exactly one:

* ``ContenthashResolver`` asks an external naming-service lookup for the raw
  contenthash record and decodes it.
* ``LimoResolver`` skips the record entirely and addresses the name through
  the ``https://{name}.limo`` gateway, yielding an ``ens`` pseudo reference.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable

from .config import RESOLUTION_CONTENTHASH, RESOLUTION_LIMO, RegistryConfig
from .content import PROTOCOL_ENS, ContentReference
from .contenthash import decode_contenthash

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9-]+$")

ContenthashLookup = Callable[[str], "bytes | str | None"]


class ResolutionStatus(enum.Enum):
    UNCONFIGURED = "unconfigured"
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Resolution:
    status: ResolutionStatus
    name: str | None = None
    content_ref: ContentReference | None = None


def normalize_name(name: str | None) -> str | None:
    if name is None:
        return None
    value = name.strip().lower().rstrip(".")
    return value or None


def is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


def limo_origin(name: str) -> str:
    normalized = normalize_name(name)
    if normalized is None or not is_valid_name(normalized):
        raise ValueError(f"Invalid registry name: {name!r}")
    return f"https://{normalized}.limo"


class ContenthashResolver:
    strategy = RESOLUTION_CONTENTHASH

    def __init__(self, lookup: ContenthashLookup) -> None:
        self._lookup = lookup

    def resolve(self, name: str | None) -> Resolution:
        normalized = normalize_name(name)
        if normalized is None:
            return Resolution(ResolutionStatus.UNCONFIGURED)
        try:
            raw = self._lookup(normalized)
        except Exception as exc:
            logger.warning("Contenthash lookup failed for %s: %s", normalized, exc)
            return Resolution(ResolutionStatus.UNRESOLVED, normalized)
        ref = decode_contenthash(raw)
        if ref is None:
            logger.info("No usable contenthash published for %s", normalized)
            return Resolution(ResolutionStatus.UNRESOLVED, normalized)
        return Resolution(ResolutionStatus.RESOLVED, normalized, ref)


class LimoResolver:
    strategy = RESOLUTION_LIMO

    def resolve(self, name: str | None) -> Resolution:
        normalized = normalize_name(name)
        if normalized is None:
            return Resolution(ResolutionStatus.UNCONFIGURED)
        if not is_valid_name(normalized):
            return Resolution(ResolutionStatus.UNRESOLVED, normalized)
        return Resolution(
            ResolutionStatus.RESOLVED,
            normalized,
            ContentReference(protocol=PROTOCOL_ENS, hash=normalized),
        )


def _no_lookup(name: str) -> None:
    logger.info("No naming-service lookup configured; %s cannot be resolved", name)
    return None


def build_resolver(
    config: RegistryConfig,
    lookup: ContenthashLookup | None = None,
) -> ContenthashResolver | LimoResolver:
    if config.resolution == RESOLUTION_LIMO:
        return LimoResolver()
    return ContenthashResolver(lookup or _no_lookup)
