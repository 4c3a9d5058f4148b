from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Callable, Iterable

from .content import ContentReference, content_ref_from_dict, content_ref_to_dict
from .entry import LicenseEntry, entry_from_dict, entry_path, entry_to_dict, sort_newest_first
from .errors import SchemaError

REGISTRY_SCHEMA = "commonground-license-registry/v1"
MANIFEST_PATH = "/registry.json"

MODE_CHAIN = "chain"
MODE_INLINE = "inline"


@dataclass(frozen=True)
class RegistryManifest:
    schema: str
    name: str
    current_version: int
    description: str | None = None
    head_entry_path: str | None = None
    head_entry_ref: ContentReference | None = None
    entries: tuple[LicenseEntry, ...] = ()
    mode: str = MODE_CHAIN

    @property
    def head_entry(self) -> LicenseEntry | None:
        return self.entries[0] if self.entries else None

    def entries_by_version(self) -> dict[int, LicenseEntry]:
        return {entry.version: entry for entry in self.entries}


def _decode_v1(payload: dict) -> RegistryManifest:
    current_version = payload.get("current_version")
    if not isinstance(current_version, int) or isinstance(current_version, bool):
        raise SchemaError("Registry manifest current_version must be an integer")
    name = payload.get("name")
    description = payload.get("description")
    try:
        head_entry_ref = content_ref_from_dict(payload.get("head_entry_ref"))
    except ValueError as exc:
        raise SchemaError(f"Invalid head_entry_ref: {exc}") from exc

    common = {
        "schema": REGISTRY_SCHEMA,
        "name": name if isinstance(name, str) else "",
        "current_version": current_version,
        "description": description if isinstance(description, str) else None,
        "head_entry_ref": head_entry_ref,
    }
    raw_entries = payload.get("entries")
    if raw_entries is not None:
        if not isinstance(raw_entries, list):
            raise SchemaError("Registry manifest entries must be a list")
        return RegistryManifest(
            entries=tuple(entry_from_dict(item) for item in raw_entries),
            head_entry_path=payload.get("head_entry_path") or None,
            mode=MODE_INLINE,
            **common,
        )
    head_entry_path = payload.get("head_entry_path")
    if not isinstance(head_entry_path, str) or not head_entry_path:
        raise SchemaError("Registry manifest has neither head_entry_path nor entries")
    return RegistryManifest(head_entry_path=head_entry_path, mode=MODE_CHAIN, **common)


_MANIFEST_DECODERS: dict[str, Callable[[dict], RegistryManifest]] = {
    REGISTRY_SCHEMA: _decode_v1,
}


def manifest_from_dict(payload: object) -> RegistryManifest:
    if not isinstance(payload, dict):
        raise SchemaError("Registry manifest must be a JSON object")
    schema = payload.get("schema")
    decoder = _MANIFEST_DECODERS.get(schema) if isinstance(schema, str) else None
    if decoder is None:
        raise SchemaError(f"Unknown registry schema: {schema}")
    return decoder(payload)


def manifest_from_bytes(data: bytes) -> RegistryManifest:
    return manifest_from_dict(json.loads(data))


def manifest_to_dict(manifest: RegistryManifest, *, inline: bool | None = None) -> dict[str, object]:
    inline = manifest.mode == MODE_INLINE if inline is None else inline
    payload: dict[str, object] = {
        "schema": manifest.schema,
        "name": manifest.name,
        "current_version": manifest.current_version,
    }
    if manifest.description is not None:
        payload["description"] = manifest.description
    if inline:
        payload["entries"] = [entry_to_dict(entry) for entry in manifest.entries]
    else:
        payload["head_entry_path"] = manifest.head_entry_path or entry_path(manifest.current_version)
        if manifest.head_entry_ref is not None:
            payload["head_entry_ref"] = content_ref_to_dict(manifest.head_entry_ref)
    return payload


def manifest_to_bytes(manifest: RegistryManifest) -> bytes:
    return json.dumps(manifest_to_dict(manifest), sort_keys=True, separators=(",", ":")).encode("utf-8")


def build_manifest(
    name: str,
    entries: Iterable[LicenseEntry],
    *,
    description: str | None = None,
    inline: bool = False,
    head_entry_ref: ContentReference | None = None,
) -> RegistryManifest:
    ordered = sort_newest_first(entries)
    if not ordered:
        raise ValueError("A registry needs at least one entry")
    head = ordered[0]
    return RegistryManifest(
        schema=REGISTRY_SCHEMA,
        name=name,
        current_version=head.version,
        description=description,
        head_entry_path=entry_path(head.version),
        head_entry_ref=head_entry_ref,
        entries=ordered,
        mode=MODE_INLINE if inline else MODE_CHAIN,
    )


def with_entries(manifest: RegistryManifest, entries: Iterable[LicenseEntry]) -> RegistryManifest:
    return replace(manifest, entries=tuple(entries))


def validate_manifest(manifest: RegistryManifest) -> list[str]:
    errors: list[str] = []
    if manifest.schema != REGISTRY_SCHEMA:
        errors.append("schema_invalid")
    if not manifest.name:
        errors.append("name_missing")
    if manifest.current_version < 1:
        errors.append("current_version_invalid")
    head = manifest.head_entry
    if head is not None and head.version != manifest.current_version:
        errors.append("current_version_mismatch")
    versions = [entry.version for entry in manifest.entries]
    if versions != sorted(versions, reverse=True) or len(set(versions)) != len(versions):
        errors.append("entries_not_newest_first")
    return errors
