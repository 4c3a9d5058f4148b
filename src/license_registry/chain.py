"""Reconstruct a registry's version history from its content root.

A chain-shaped manifest names its head entry; older entries are found by
convention at ``/entries/v{N}.json`` and fetched one version at a time, newest
first. The walk stops at the first entry that cannot be fetched or is not
JSON: the reachable suffix is still a valid view of the registry, and the
versions beyond the gap are reported in ``missing_versions``. An entry that
is reachable but is not a license entry object, or declares another schema or
version, raises ``SchemaError``.

An inline-shaped manifest already carries every entry, newest first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .content import ContentReference
from .entry import ENTRY_SCHEMA, LicenseEntry, entry_from_dict, entry_path
from .errors import GatewayError, SchemaError
from .gateway import StorageGateway
from .manifest import MANIFEST_PATH, MODE_INLINE, RegistryManifest, manifest_from_dict, with_entries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    root: ContentReference
    manifest: RegistryManifest
    missing_versions: tuple[int, ...] = ()

    @property
    def entries(self) -> tuple[LicenseEntry, ...]:
        return self.manifest.entries

    @property
    def current_entry(self) -> LicenseEntry:
        return self.manifest.entries[0]

    @property
    def is_complete(self) -> bool:
        return not self.missing_versions


def _require_entry_schema(entry: LicenseEntry, source: str) -> None:
    if entry.schema != ENTRY_SCHEMA:
        raise SchemaError(f"Unknown entry schema: {entry.schema or '<missing>'} ({source})")


def fetch_entry(gateway: StorageGateway, root: ContentReference, path: str) -> LicenseEntry:
    entry = entry_from_dict(gateway.fetch_from_dir(root.hash, path))
    _require_entry_schema(entry, path)
    return entry


def walk_chain(
    gateway: StorageGateway,
    root: ContentReference,
    head: LicenseEntry,
) -> tuple[tuple[LicenseEntry, ...], tuple[int, ...]]:
    """Collect ``head`` and its predecessors, returning ``(entries, missing_versions)``."""
    chain = [head]
    for version in range(head.version - 1, 0, -1):
        path = entry_path(version)
        try:
            payload = gateway.fetch_from_dir(root.hash, path)
        except (GatewayError, ValueError) as exc:
            missing = tuple(range(version, 0, -1))
            logger.warning(
                "Chain walk for %s stopped at v%d (%s); %d older entries unreachable",
                root.hash,
                version,
                exc,
                len(missing),
            )
            return tuple(chain), missing
        entry = entry_from_dict(payload)
        _require_entry_schema(entry, path)
        if entry.version != version:
            raise SchemaError(f"{path} declares version {entry.version}")
        chain.append(entry)
    return tuple(chain), ()


def load_registry(gateway: StorageGateway, root: ContentReference) -> RegistrySnapshot:
    """Fetch the manifest at ``root`` and rebuild its full history.

    Raises ``GatewayError`` when the manifest or head entry cannot be fetched
    from any origin, ``SchemaError`` for unrecognized manifests or entries, and
    ``ValueError`` for payloads that are not JSON.
    """
    manifest = manifest_from_dict(gateway.fetch_from_dir(root.hash, MANIFEST_PATH))

    if manifest.mode == MODE_INLINE:
        if not manifest.entries:
            raise SchemaError("Registry manifest lists no entries")
        for index, entry in enumerate(manifest.entries):
            _require_entry_schema(entry, f"entries[{index}]")
        snapshot = RegistrySnapshot(root=root, manifest=manifest)
    else:
        head = fetch_entry(gateway, root, manifest.head_entry_path or "")
        entries, missing = walk_chain(gateway, root, head)
        snapshot = RegistrySnapshot(
            root=root,
            manifest=with_entries(manifest, entries),
            missing_versions=missing,
        )

    if snapshot.current_entry.version != manifest.current_version:
        logger.warning(
            "Registry %s declares current_version %d but its newest entry is v%d",
            root.hash,
            manifest.current_version,
            snapshot.current_entry.version,
        )
    return snapshot
