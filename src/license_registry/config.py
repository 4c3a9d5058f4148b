from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .content import PROTOCOL_IPFS, ContentReference, parse_content_uri

DEFAULT_IPFS_GATEWAYS = (
    "https://dweb.link",
    "https://w3s.link",
    "https://cloudflare-ipfs.com",
    "https://ipfs.io",
)
DEFAULT_SWARM_GATEWAYS = ("https://api.gateway.ethswarm.org",)
DEFAULT_ARWEAVE_GATEWAYS = ("https://arweave.net",)
DEFAULT_TIMEOUT_MS = 30_000

RESOLUTION_CONTENTHASH = "contenthash"
RESOLUTION_LIMO = "limo"
RESOLUTION_STRATEGIES = (RESOLUTION_CONTENTHASH, RESOLUTION_LIMO)

ENV_PREFIX = "LICENSE_REGISTRY_"


@dataclass(frozen=True)
class RegistryConfig:
    gateway_origins: tuple[str, ...] = DEFAULT_IPFS_GATEWAYS
    swarm_origins: tuple[str, ...] = DEFAULT_SWARM_GATEWAYS
    arweave_origins: tuple[str, ...] = DEFAULT_ARWEAVE_GATEWAYS
    request_timeout_ms: int = DEFAULT_TIMEOUT_MS
    ens_name: str | None = None
    root_override: ContentReference | None = None
    resolution: str = RESOLUTION_CONTENTHASH

    def __post_init__(self) -> None:
        if self.request_timeout_ms <= 0:
            raise ValueError("request_timeout_ms must be positive")
        if self.resolution not in RESOLUTION_STRATEGIES:
            raise ValueError(f"Unknown resolution strategy: {self.resolution}")
        if not self.gateway_origins:
            raise ValueError("At least one IPFS gateway origin is required")

    @property
    def timeout(self) -> float:
        return self.request_timeout_ms / 1000.0


def _parse_list_field(raw: str) -> tuple[str, ...]:
    items: list[str] = []
    for chunk in raw.replace("\n", ",").split(","):
        item = chunk.strip().rstrip("/")
        if item:
            items.append(item)
    return tuple(items)


def parse_root_override(raw: str) -> ContentReference:
    value = raw.strip()
    ref = parse_content_uri(value)
    if ref is not None:
        return ref
    return ContentReference(protocol=PROTOCOL_IPFS, hash=value)


def config_from_env(environ: Mapping[str, str] | None = None) -> RegistryConfig:
    env = os.environ if environ is None else environ

    def _get(name: str) -> str | None:
        value = env.get(ENV_PREFIX + name)
        if value is None or not value.strip():
            return None
        return value

    gateways = _get("IPFS_GATEWAYS")
    swarm = _get("SWARM_GATEWAYS")
    arweave = _get("ARWEAVE_GATEWAYS")
    timeout_ms = _get("TIMEOUT_MS")
    ens_name = _get("ENS_NAME")
    root = _get("CID")
    resolution = _get("RESOLUTION")

    try:
        request_timeout_ms = int(timeout_ms) if timeout_ms else DEFAULT_TIMEOUT_MS
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}TIMEOUT_MS must be an integer: {timeout_ms}") from exc

    return RegistryConfig(
        gateway_origins=_parse_list_field(gateways) if gateways else DEFAULT_IPFS_GATEWAYS,
        swarm_origins=_parse_list_field(swarm) if swarm else DEFAULT_SWARM_GATEWAYS,
        arweave_origins=_parse_list_field(arweave) if arweave else DEFAULT_ARWEAVE_GATEWAYS,
        request_timeout_ms=request_timeout_ms,
        ens_name=ens_name.strip() if ens_name else None,
        root_override=parse_root_override(root) if root else None,
        resolution=resolution.strip().lower() if resolution else RESOLUTION_CONTENTHASH,
    )
