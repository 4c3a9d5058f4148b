"""Compare a proposed registry root against the current one before a vote.

History is append-only: every current version must survive unchanged in the
proposed registry. New versions are allowed, and their license texts must hash
to what they declare.
"""

from __future__ import annotations

from dataclasses import dataclass

from .chain import RegistrySnapshot, load_registry
from .content import ContentReference
from .entry import LicenseEntry
from .gateway import StorageGateway
from .hashing import same_digest
from .manifest import REGISTRY_SCHEMA, RegistryManifest
from .verifier import VerificationCheck, check_file_hash, check_to_dict

CRITICAL_CHECK_IDS = frozenset({"schema", "entries_preserved", "entries_unmodified"})
CRITICAL_CHECK_PREFIXES = ("hash_",)


@dataclass(frozen=True)
class EntryModification:
    old: LicenseEntry
    new: LicenseEntry
    differences: tuple[str, ...]


@dataclass(frozen=True)
class ComparisonResult:
    valid: bool
    summary: str
    checks: tuple[VerificationCheck, ...]
    new_entries: tuple[LicenseEntry, ...]
    modified_entries: tuple[EntryModification, ...]
    removed_entries: tuple[LicenseEntry, ...]


def is_critical(check: VerificationCheck) -> bool:
    return check.id in CRITICAL_CHECK_IDS or check.id.startswith(CRITICAL_CHECK_PREFIXES)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def _versions(entries) -> str:
    return "v" + ", v".join(str(entry.version) for entry in entries)


def entry_differences(old: LicenseEntry, new: LicenseEntry) -> tuple[str, ...]:
    differences: list[str] = []
    if old.effective_date != new.effective_date:
        differences.append(f"effective_date: {old.effective_date} → {new.effective_date}")
    old_spdx = old.license.spdx if old.license else None
    new_spdx = new.license.spdx if new.license else None
    if old_spdx != new_spdx:
        differences.append(f"license.spdx: {old_spdx} → {new_spdx}")
    old_hash = old.license.text_sha256 if old.license else None
    new_hash = new.license.text_sha256 if new.license else None
    if not same_digest(old_hash, new_hash):
        differences.append("license.text_sha256: hash changed")
    return tuple(differences)


def _summary(valid: bool, added: int, removed: int, modified: int) -> str:
    if valid and added:
        return f"Valid update with {added} new {_plural(added, 'entry', 'entries')}"
    if valid:
        return "Valid (no changes)"
    if removed:
        return f"Invalid: {removed} {_plural(removed, 'entry', 'entries')} removed"
    if modified:
        return f"Invalid: {modified} {_plural(modified, 'entry', 'entries')} modified"
    return "Invalid: verification failed"


def compare_registries(
    current: RegistryManifest,
    proposed: RegistryManifest,
    proposed_root: ContentReference,
    gateway: StorageGateway,
) -> ComparisonResult:
    """Diff two fully reconstructed manifests.

    ``gateway`` must be able to read ``proposed_root``; it is used to re-hash
    the license text of every added version.
    """
    checks: list[VerificationCheck] = []
    current_by_version = current.entries_by_version()
    proposed_by_version = proposed.entries_by_version()

    schema_ok = proposed.schema == REGISTRY_SCHEMA
    checks.append(
        VerificationCheck(
            "schema",
            "Registry schema is valid",
            schema_ok,
            error=None if schema_ok else f"Invalid schema: {proposed.schema}",
        )
    )

    progresses = proposed.current_version >= current.current_version
    checks.append(
        VerificationCheck(
            "version_progression",
            "Version number increases or stays the same",
            progresses,
            error=None
            if progresses
            else f"Proposed version ({proposed.current_version}) is less than current ({current.current_version})",
            details=f"Current: v{current.current_version} → Proposed: v{proposed.current_version}",
        )
    )

    removed: list[LicenseEntry] = []
    modified: list[EntryModification] = []
    for version, old in current_by_version.items():
        new = proposed_by_version.get(version)
        if new is None:
            removed.append(old)
            continue
        differences = entry_differences(old, new)
        if differences:
            modified.append(EntryModification(old, new, differences))

    checks.append(
        VerificationCheck(
            "entries_preserved",
            "All existing entries are preserved",
            not removed,
            error=f"{len(removed)} entries were removed" if removed else None,
            details=f"Removed: {_versions(removed)}" if removed else None,
        )
    )
    checks.append(
        VerificationCheck(
            "entries_unmodified",
            "Existing entries are unmodified",
            not modified,
            error=f"{len(modified)} entries were modified" if modified else None,
            details=f"Modified: {_versions(item.old for item in modified)}" if modified else None,
        )
    )

    added = [entry for version, entry in proposed_by_version.items() if version not in current_by_version]
    checks.append(
        VerificationCheck(
            "new_entries",
            "New entries are properly added",
            True,
            details=f"{len(added)} new entries: {_versions(added)}" if added else "No new entries",
        )
    )

    for entry in added:
        check_id = f"hash_v{entry.version}"
        description = f"License text hash valid for v{entry.version}"
        if entry.license is None:
            checks.append(VerificationCheck(check_id, description, False, error="Entry has no license"))
            continue
        checks.append(
            check_file_hash(
                check_id,
                description,
                gateway,
                proposed_root,
                entry.license.text_path,
                entry.license.text_sha256,
            )
        )

    name_ok = current.name == proposed.name
    checks.append(
        VerificationCheck(
            "name_consistent",
            "Registry name is consistent",
            name_ok,
            error=None if name_ok else f'Name changed: "{current.name}" → "{proposed.name}"',
        )
    )

    gaps = sorted(set(range(1, proposed.current_version + 1)) - set(proposed_by_version))
    checks.append(
        VerificationCheck(
            "history_complete",
            "Proposed history is complete back to v1",
            not gaps,
            error=f"Unreachable: v{', v'.join(str(v) for v in gaps)}" if gaps else None,
        )
    )

    valid = all(check.passed for check in checks if is_critical(check))
    return ComparisonResult(
        valid=valid,
        summary=_summary(valid, len(added), len(removed), len(modified)),
        checks=tuple(checks),
        new_entries=tuple(added),
        modified_entries=tuple(modified),
        removed_entries=tuple(removed),
    )


def fetch_registry(gateway: StorageGateway, root: ContentReference) -> RegistrySnapshot:
    return load_registry(gateway, root)


def as_dict(result: ComparisonResult) -> dict[str, object]:
    return {
        "valid": result.valid,
        "summary": result.summary,
        "checks": [check_to_dict(check) for check in result.checks],
        "new_entries": [entry.version for entry in result.new_entries],
        "modified_entries": [
            {"version": item.old.version, "differences": list(item.differences)}
            for item in result.modified_entries
        ],
        "removed_entries": [entry.version for entry in result.removed_entries],
    }
