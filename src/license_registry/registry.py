"""Observable registry state for a configured name or root.

``RegistryReader.refresh`` resolves the configured name, reconstructs the
chain and publishes one of four states: loading, not found, error or loaded.
Every refresh is tagged with a generation number, and only the newest
generation may replace ``reader.state``.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace

from .chain import RegistrySnapshot, load_registry
from .compare import ComparisonResult, compare_registries
from .config import ENV_PREFIX, RegistryConfig
from .content import PROTOCOL_IPFS, ContentReference, format_content_uri
from .contenthash import is_valid_cid
from .entry import LicenseEntry, entry_to_dict
from .errors import GatewayError, RegistryNotLoadedError, SchemaError
from .gateway import Opener, StorageGateway, gateway_for
from .manifest import RegistryManifest
from .resolver import (
    ContenthashLookup,
    ContenthashResolver,
    LimoResolver,
    ResolutionStatus,
    build_resolver,
    normalize_name,
)
from .verifier import ChainVerificationResult, verify_chain, verify_entry

logger = logging.getLogger(__name__)

CONFIGURATION_MESSAGE = (
    f"No registry name configured. Set {ENV_PREFIX}ENS_NAME or {ENV_PREFIX}CID."
)


class RegistryStatus(enum.Enum):
    LOADING = "loading"
    NOT_FOUND = "not_found"
    ERROR = "error"
    LOADED = "loaded"


@dataclass(frozen=True)
class RegistryState:
    status: RegistryStatus
    generation: int = 0
    ens_name: str | None = None
    content_ref: ContentReference | None = None
    manifest: RegistryManifest | None = None
    missing_versions: tuple[int, ...] = ()
    error: str | None = None
    gateway_error: GatewayError | None = None

    @property
    def is_loaded(self) -> bool:
        return self.status is RegistryStatus.LOADED

    @property
    def entries(self) -> tuple[LicenseEntry, ...]:
        return self.manifest.entries if self.manifest is not None else ()

    @property
    def current_entry(self) -> LicenseEntry | None:
        return self.manifest.head_entry if self.manifest is not None else None


class RegistryReader:
    def __init__(
        self,
        config: RegistryConfig,
        resolver: ContenthashResolver | LimoResolver | None = None,
        *,
        lookup: ContenthashLookup | None = None,
        opener: Opener | None = None,
        root_override: ContentReference | None = None,
        ens_name: str | None = None,
    ) -> None:
        if root_override is not None:
            config = replace(config, root_override=root_override)
        if ens_name is not None:
            config = replace(config, ens_name=ens_name)
        self.config = config
        self.resolver = resolver or build_resolver(config, lookup)
        self._opener = opener
        self._lock = threading.Lock()
        self._generation = 0
        self._state = RegistryState(RegistryStatus.LOADING)

    @property
    def state(self) -> RegistryState:
        with self._lock:
            return self._state

    @property
    def ens_name(self) -> str | None:
        return normalize_name(self.config.ens_name)

    def gateway(self, ref: ContentReference) -> StorageGateway:
        return gateway_for(ref, self.config, opener=self._opener)

    def refresh(self) -> RegistryState:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._state = RegistryState(RegistryStatus.LOADING, generation, ens_name=self.ens_name)
        state = self._load(generation)
        with self._lock:
            if generation == self._generation:
                self._state = state
                logger.debug("Registry state %s (generation %d)", state.status.value, generation)
            else:
                logger.debug("Discarding stale registry state from generation %d", generation)
        return state

    def _resolve_root(self) -> tuple[ContentReference | None, RegistryState | None]:
        if self.config.root_override is not None:
            return self.config.root_override, None
        ens_name = self.ens_name
        resolution = self.resolver.resolve(ens_name)
        if resolution.status is ResolutionStatus.RESOLVED:
            return resolution.content_ref, None
        if resolution.status is ResolutionStatus.UNCONFIGURED:
            return None, RegistryState(RegistryStatus.ERROR, ens_name=ens_name, error=CONFIGURATION_MESSAGE)
        return None, RegistryState(RegistryStatus.NOT_FOUND, ens_name=ens_name)

    def _load(self, generation: int) -> RegistryState:
        ens_name = self.ens_name
        ref, failure = self._resolve_root()
        if failure is not None:
            return replace(failure, generation=generation)

        base = RegistryState(RegistryStatus.LOADING, generation, ens_name=ens_name, content_ref=ref)
        try:
            snapshot = load_registry(self.gateway(ref), ref)
        except GatewayError as exc:
            status = RegistryStatus.NOT_FOUND if exc.looks_unpublished else RegistryStatus.ERROR
            logger.warning("Registry %s unavailable: %s", format_content_uri(ref), exc)
            return replace(base, status=status, error=str(exc), gateway_error=exc)
        except SchemaError as exc:
            return replace(base, status=RegistryStatus.ERROR, error=str(exc))
        except ValueError as exc:
            return replace(base, status=RegistryStatus.ERROR, error=f"Malformed registry data: {exc}")
        return self._loaded(base, snapshot)

    def _loaded(self, base: RegistryState, snapshot: RegistrySnapshot) -> RegistryState:
        return replace(
            base,
            status=RegistryStatus.LOADED,
            manifest=snapshot.manifest,
            missing_versions=snapshot.missing_versions,
        )

    def require_loaded(self) -> RegistryState:
        state = self.state
        if not state.is_loaded or state.content_ref is None:
            raise RegistryNotLoadedError(state.error or f"Registry is {state.status.value}")
        return state

    def verify_entry(
        self,
        entry: LicenseEntry | None = None,
        *,
        verify_signatures: bool = False,
    ) -> ChainVerificationResult:
        state = self.require_loaded()
        target = entry or state.current_entry
        return verify_entry(
            target,
            state.content_ref,
            self.gateway(state.content_ref),
            verify_signatures=verify_signatures,
        )

    def verify_current(self, *, verify_signatures: bool = False) -> ChainVerificationResult:
        state = self.require_loaded()
        return verify_chain(
            state.entries,
            state.content_ref,
            self.gateway(state.content_ref),
            verify_signatures=verify_signatures,
        )

    def compare(self, proposed_hash: str) -> ComparisonResult:
        """Compare the loaded registry with the one rooted at an IPFS CID.

        Raises ``ValueError`` for a malformed CID, ``RegistryNotLoadedError``
        when nothing is loaded, and ``GatewayError`` or ``SchemaError`` when
        the proposed registry cannot be read.
        """
        proposed_hash = proposed_hash.strip()
        if not is_valid_cid(proposed_hash):
            raise ValueError("Invalid CID format")
        state = self.require_loaded()
        proposed_root = ContentReference(protocol=PROTOCOL_IPFS, hash=proposed_hash)
        gateway = self.gateway(proposed_root)
        proposed = load_registry(gateway, proposed_root)
        return compare_registries(state.manifest, proposed.manifest, proposed_root, gateway)


def as_dict(state: RegistryState) -> dict[str, object]:
    payload: dict[str, object] = {"status": state.status.value, "generation": state.generation}
    if state.ens_name is not None:
        payload["ens_name"] = state.ens_name
    if state.content_ref is not None:
        payload["content_ref"] = format_content_uri(state.content_ref)
    if state.error is not None:
        payload["error"] = state.error
    if state.gateway_error is not None:
        payload["attempted_origins"] = list(state.gateway_error.attempted_origins)
    if state.manifest is not None:
        payload["name"] = state.manifest.name
        payload["current_version"] = state.manifest.current_version
        payload["mode"] = state.manifest.mode
        payload["entries"] = [entry_to_dict(entry) for entry in state.entries]
    if state.missing_versions:
        payload["missing_versions"] = list(state.missing_versions)
    return payload
