"""Build publishable registry packages.

A package is the directory tree a registry root serves: ``registry.json``,
``entries/v{N}.json``, ``licenses/`` and ``governance/``, plus a README for
whoever uploads it. The content identifier is only known after upload, so the
manifest never carries a ``head_entry_ref``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path, PurePosixPath
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from .content import ContentReference
from .entry import GovernanceInfo, LicenseEntry, LicenseInfo, build_entry, entry_path, entry_to_dict
from .hashing import hash_bytes, hash_text, same_digest
from .manifest import build_manifest, manifest_to_dict

LICENSES_DIR = "licenses"
GOVERNANCE_DIR = "governance"

README_TEMPLATE = """# License Registry

This package contains the license registry for {name}.

## Structure

- `registry.json` - Registry manifest
- `entries/` - License entry JSON files
- `licenses/` - License text files
- `governance/` - Governance decision documents

## Current Version

Version {version} - {spdx}
Effective: {effective_date}

## Verification

Each entry contains SHA-256 hashes of the license text and governance documents.
Signatures can be verified using EIP-712 typed data verification.

## Publishing

1. Upload this entire folder to IPFS (for example with `ipfs add -r`)
2. Note the resulting CID
3. Point the registry name's contenthash record at the CID
"""


@dataclass(frozen=True)
class RegistryPackage:
    name: str
    new_entry: LicenseEntry
    license_text: str
    license_file_name: str
    description: str | None = None
    governance_doc: bytes | None = None
    governance_file_name: str | None = None
    previous_entries: tuple[LicenseEntry, ...] = ()


def _json_bytes(payload: object) -> bytes:
    return (json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def _safe_file_name(name: str) -> str:
    candidate = PurePosixPath(name).name
    if not candidate or candidate in (".", ".."):
        raise ValueError(f"Invalid file name: {name!r}")
    return candidate


def license_info_for_text(spdx: str, license_text: str, license_file_name: str) -> LicenseInfo:
    return LicenseInfo(
        spdx=spdx,
        text_path=f"/{LICENSES_DIR}/{_safe_file_name(license_file_name)}",
        text_sha256=hash_text(license_text),
    )


def governance_info_for_doc(document: bytes, file_name: str) -> GovernanceInfo:
    return GovernanceInfo(
        decision_path=f"/{GOVERNANCE_DIR}/{_safe_file_name(file_name)}",
        decision_sha256=hash_bytes(document),
    )


def next_entry(
    current: LicenseEntry | None,
    effective_date: str,
    license: LicenseInfo,
    *,
    current_root: ContentReference | None = None,
    governance: GovernanceInfo | None = None,
    created_at: str | None = None,
) -> LicenseEntry:
    """Draft the entry that follows ``current`` (or the genesis entry)."""
    version = 1 if current is None else current.version + 1
    return build_entry(
        version,
        effective_date,
        license,
        governance=governance,
        prev_entry_ref=current_root if current is not None else None,
        created_at=created_at,
    )


def validate_entry_files(
    entry: LicenseEntry,
    license_text: str | None,
    governance_doc: bytes | None = None,
) -> list[str]:
    errors: list[str] = []
    if not license_text:
        errors.append("license_text_missing")
    elif entry.license is not None and not same_digest(hash_text(license_text), entry.license.text_sha256):
        errors.append("license_text_hash_mismatch")
    if entry.license is None:
        errors.append("license_missing")
    elif not entry.license.text_path.lstrip("/").startswith(f"{LICENSES_DIR}/"):
        errors.append("license_text_path_invalid")
    if entry.governance is not None:
        if not governance_doc:
            errors.append("governance_document_missing")
        elif not same_digest(hash_bytes(governance_doc), entry.governance.decision_sha256):
            errors.append("governance_hash_mismatch")
    return errors


def package_files(package: RegistryPackage, *, inline_entries: bool = False) -> list[tuple[str, bytes]]:
    """Return ``(path, data)`` pairs for every file in the package, sorted by path."""
    entries = {entry.version: entry for entry in package.previous_entries}
    entries[package.new_entry.version] = package.new_entry
    manifest = build_manifest(
        package.name,
        entries.values(),
        description=package.description,
        inline=inline_entries,
    )
    if manifest.current_version != package.new_entry.version:
        raise ValueError(
            f"New entry v{package.new_entry.version} is older than v{manifest.current_version}"
        )

    files: dict[str, bytes] = {
        f"{LICENSES_DIR}/{_safe_file_name(package.license_file_name)}": package.license_text.encode("utf-8"),
        "registry.json": _json_bytes(manifest_to_dict(manifest)),
        "README.md": README_TEMPLATE.format(
            name=package.name,
            version=package.new_entry.version,
            spdx=package.new_entry.license.spdx if package.new_entry.license else "",
            effective_date=package.new_entry.effective_date,
        ).encode("utf-8"),
    }
    if package.governance_doc is not None and package.governance_file_name:
        files[f"{GOVERNANCE_DIR}/{_safe_file_name(package.governance_file_name)}"] = package.governance_doc
    if not inline_entries:
        for entry in manifest.entries:
            files[entry_path(entry.version).lstrip("/")] = _json_bytes(entry_to_dict(entry))
    return sorted(files.items(), key=lambda item: item[0])


def _check_package(package: RegistryPackage) -> None:
    errors = validate_entry_files(package.new_entry, package.license_text, package.governance_doc)
    if errors:
        raise ValueError(f"Invalid registry package: {', '.join(errors)}")


def create_registry_package(
    package: RegistryPackage,
    output_path: Path,
    *,
    inline_entries: bool = False,
    compression: int = ZIP_DEFLATED,
) -> Path:
    _check_package(package)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(output_path, "w", compression=compression) as archive:
        for name, data in package_files(package, inline_entries=inline_entries):
            info = ZipInfo(name)
            info.date_time = (1980, 1, 1, 0, 0, 0)
            info.compress_type = compression
            archive.writestr(info, data)
    return output_path


def write_registry_directory(
    package: RegistryPackage,
    directory: Path,
    *,
    inline_entries: bool = False,
) -> Path:
    _check_package(package)
    for name, data in package_files(package, inline_entries=inline_entries):
        target = directory / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return directory


def generate_package_filename(name: str, version: int, today: date | None = None) -> str:
    safe_name = re.sub(r"[^a-z0-9]+", "-", name.lower())
    stamp = (today or date.today()).isoformat()
    return f"{safe_name}-registry-v{version}-{stamp}.zip"
