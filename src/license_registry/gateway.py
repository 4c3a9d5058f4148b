"""Multi-gateway fetcher for content-addressed stores.

Each fetch walks the configured origins in order, giving every origin exactly
one attempt bounded by the request timeout. The first successful response wins;
when every origin fails a ``GatewayError`` lists each attempt.
"""

from __future__ import annotations

import json
import logging
import re
from http.client import HTTPException
from typing import Any, Callable, Iterable
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError
from urllib.parse import quote

from .config import RegistryConfig
from .content import (
    PROTOCOL_ARWEAVE,
    PROTOCOL_ENS,
    PROTOCOL_IPFS,
    PROTOCOL_IPNS,
    PROTOCOL_SWARM,
    ContentReference,
)
from .contenthash import is_valid_cid
from .errors import GatewayAttempt, GatewayError
from .resolver import is_valid_name, limo_origin

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
ACCEPT_HEADER = "application/json, text/plain, */*"

_SWARM_HASH_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_ARWEAVE_TX_RE = re.compile(r"^[A-Za-z0-9_-]{43}$")

Opener = Callable[..., Any]


def normalize_dir_path(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def quote_path(path: str) -> str:
    return quote(path, safe="/")


class StorageGateway:
    def __init__(
        self,
        protocol: str,
        origins: Iterable[str],
        timeout: float = DEFAULT_TIMEOUT,
        *,
        path_prefix: str | None = None,
        opener: Opener | None = None,
    ) -> None:
        self.protocol = protocol
        self.origins = tuple(origin.rstrip("/") for origin in origins)
        if not self.origins:
            raise ValueError("A gateway needs at least one origin")
        if timeout <= 0:
            raise ValueError("Gateway timeout must be positive")
        self.timeout = timeout
        self.path_prefix = protocol if path_prefix is None else path_prefix
        self._opener = opener or urlrequest.urlopen

    def __repr__(self) -> str:
        return f"{type(self).__name__}(protocol={self.protocol!r}, origins={self.origins!r})"

    def is_valid_hash(self, hash: str) -> bool:
        if self.protocol in (PROTOCOL_IPFS, PROTOCOL_IPNS):
            return is_valid_cid(hash)
        if self.protocol == PROTOCOL_SWARM:
            return bool(_SWARM_HASH_RE.match(hash))
        if self.protocol == PROTOCOL_ARWEAVE:
            return bool(_ARWEAVE_TX_RE.match(hash))
        return False

    def build_url(self, origin: str, hash: str, path: str | None = None) -> str:
        hash = quote(hash, safe="")
        base = f"{origin}/{self.path_prefix}/{hash}" if self.path_prefix else f"{origin}/{hash}"
        return f"{base}{quote_path(path)}" if path else base

    def gateway_url(self, hash: str) -> str:
        return self.build_url(self.origins[0], hash)

    def _read(self, url: str, timeout: float) -> bytes:
        req = urlrequest.Request(url, headers={"Accept": ACCEPT_HEADER})
        with self._opener(req, timeout=timeout) as response:
            status = getattr(response, "status", None) or 200
            if not 200 <= status < 300:
                raise HTTPError(url, status, getattr(response, "reason", "") or "", None, None)
            return response.read()

    def fetch(self, hash: str, path: str | None = None, *, timeout: float | None = None) -> bytes:
        timeout = self.timeout if timeout is None else timeout
        attempts: list[GatewayAttempt] = []
        for origin in self.origins:
            url = self.build_url(origin, hash, path)
            try:
                data = self._read(url, timeout)
            except HTTPError as exc:
                attempt = GatewayAttempt(origin, url, f"HTTP {exc.code}: {exc.reason}", status=exc.code)
            except TimeoutError:
                attempt = GatewayAttempt(origin, url, f"timed out after {timeout:g}s", timed_out=True)
            except URLError as exc:
                attempt = GatewayAttempt(
                    origin,
                    url,
                    str(exc.reason),
                    timed_out=isinstance(exc.reason, TimeoutError),
                )
            except (OSError, HTTPException) as exc:
                attempt = GatewayAttempt(origin, url, str(exc) or type(exc).__name__)
            else:
                logger.debug("Fetched %s (%d bytes)", url, len(data))
                return data
            attempts.append(attempt)
            logger.warning(
                "%s gateway %s failed for %s: %s",
                self.protocol.upper(),
                origin,
                hash,
                attempt.error,
            )
        raise GatewayError(
            f"All {self.protocol.upper()} gateways failed for {hash}{path or ''}",
            self.protocol,
            hash,
            tuple(attempts),
            path=path,
        )

    def fetch_json(self, hash: str, path: str | None = None) -> Any:
        return json.loads(self.fetch(hash, path))

    def fetch_text(self, hash: str, path: str | None = None) -> str:
        return self.fetch(hash, path).decode("utf-8")

    def fetch_from_dir(self, dir_hash: str, file_path: str) -> Any:
        return self.fetch_json(dir_hash, normalize_dir_path(file_path))

    def fetch_bytes_from_dir(self, dir_hash: str, file_path: str) -> bytes:
        return self.fetch(dir_hash, normalize_dir_path(file_path))

    def fetch_text_from_dir(self, dir_hash: str, file_path: str) -> str:
        return self.fetch_text(dir_hash, normalize_dir_path(file_path))


class EnsGateway(StorageGateway):
    """Fetches straight through the ``{name}.limo`` origin; the hash argument is the name."""

    def __init__(
        self,
        name: str,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        opener: Opener | None = None,
    ) -> None:
        super().__init__(PROTOCOL_ENS, (limo_origin(name),), timeout, path_prefix="", opener=opener)
        self.name = name

    def is_valid_hash(self, hash: str) -> bool:
        return is_valid_name(hash)

    def build_url(self, origin: str, hash: str, path: str | None = None) -> str:
        return f"{origin}{quote_path(path or '/')}"


def gateway_for(
    ref: ContentReference,
    config: RegistryConfig,
    *,
    opener: Opener | None = None,
) -> StorageGateway:
    if ref.protocol in (PROTOCOL_IPFS, PROTOCOL_IPNS):
        return StorageGateway(ref.protocol, config.gateway_origins, config.timeout, opener=opener)
    if ref.protocol == PROTOCOL_SWARM:
        return StorageGateway(ref.protocol, config.swarm_origins, config.timeout, opener=opener)
    if ref.protocol == PROTOCOL_ARWEAVE:
        return StorageGateway(
            ref.protocol,
            config.arweave_origins,
            config.timeout,
            path_prefix="",
            opener=opener,
        )
    if ref.protocol == PROTOCOL_ENS:
        return EnsGateway(ref.hash, config.timeout, opener=opener)
    raise ValueError(f"Unknown storage protocol: {ref.protocol}")
