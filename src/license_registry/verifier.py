from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .content import ContentReference
from .eip712 import recover_entry_signer
from .entry import ENTRY_SCHEMA, SIGNATURE_TYPE_EIP712, LicenseEntry, Signature, missing_required_fields
from .errors import GatewayError
from .gateway import StorageGateway
from .hashing import hash_bytes, same_digest


@dataclass(frozen=True)
class VerificationCheck:
    id: str
    description: str
    passed: bool
    error: str | None = None
    details: str | None = None


@dataclass(frozen=True)
class ChainVerificationResult:
    valid: bool
    entry_count: int
    checks: tuple[VerificationCheck, ...]
    entries: tuple[LicenseEntry, ...]

    @property
    def failed_checks(self) -> tuple[VerificationCheck, ...]:
        return tuple(check for check in self.checks if not check.passed)


def check_schema(entry: LicenseEntry) -> VerificationCheck:
    passed = entry.schema == ENTRY_SCHEMA
    return VerificationCheck(
        "schema",
        "Entry schema is valid",
        passed,
        error=None if passed else f"Unknown schema: {entry.schema or '<missing>'}",
    )


def check_required_fields(entry: LicenseEntry) -> VerificationCheck:
    missing = missing_required_fields(entry)
    return VerificationCheck(
        "required_fields",
        "Entry has required fields",
        not missing,
        error=f"Missing fields: {', '.join(missing)}" if missing else None,
    )


def check_file_hash(
    check_id: str,
    description: str,
    gateway: StorageGateway,
    root: ContentReference,
    path: str,
    expected: str,
) -> VerificationCheck:
    try:
        data = gateway.fetch_bytes_from_dir(root.hash, path)
    except (GatewayError, ValueError) as exc:
        return VerificationCheck(check_id, description, False, error=f"Failed to fetch {path}: {exc}")
    actual = hash_bytes(data)
    if same_digest(actual, expected):
        return VerificationCheck(check_id, description, True, details=actual)
    return VerificationCheck(
        check_id,
        description,
        False,
        error="Hash mismatch",
        details=f"expected {expected}, got {actual}",
    )


def check_signature(index: int, entry: LicenseEntry, signature: Signature) -> VerificationCheck:
    check_id = f"signature_{index}"
    description = f"Signature {index} by {signature.signer} is valid"
    if signature.type != SIGNATURE_TYPE_EIP712:
        return VerificationCheck(check_id, description, False, error=f"Unsupported signature type: {signature.type}")
    try:
        recovered = recover_entry_signer(entry, signature.sig)
    except ValueError as exc:
        return VerificationCheck(check_id, description, False, error=str(exc))
    if recovered == signature.signer.lower():
        return VerificationCheck(check_id, description, True)
    return VerificationCheck(
        check_id,
        description,
        False,
        error="Signer mismatch",
        details=f"recovered {recovered}",
    )


def entry_checks(
    entry: LicenseEntry,
    root: ContentReference,
    gateway: StorageGateway,
    *,
    verify_signatures: bool = False,
) -> list[VerificationCheck]:
    checks = [check_schema(entry), check_required_fields(entry)]

    if entry.license is None:
        checks.append(
            VerificationCheck("license_hash", "License text hash matches", False, error="Entry has no license")
        )
    else:
        checks.append(
            check_file_hash(
                "license_hash",
                "License text hash matches",
                gateway,
                root,
                entry.license.text_path,
                entry.license.text_sha256,
            )
        )

    if entry.governance is not None:
        checks.append(
            check_file_hash(
                "governance_hash",
                "Governance decision hash matches",
                gateway,
                root,
                entry.governance.decision_path,
                entry.governance.decision_sha256,
            )
        )

    if verify_signatures:
        if not entry.signatures:
            checks.append(VerificationCheck("signatures", "Entry is signed", False, error="Entry has no signatures"))
        for index, signature in enumerate(entry.signatures):
            checks.append(check_signature(index, entry, signature))
    return checks


def verify_entry(
    entry: LicenseEntry,
    root: ContentReference,
    gateway: StorageGateway,
    *,
    verify_signatures: bool = False,
) -> ChainVerificationResult:
    """Run every integrity check on one entry.

    Checks are independent: a failed fetch only fails the check that needed
    it, and the rest still run.
    """
    checks = tuple(entry_checks(entry, root, gateway, verify_signatures=verify_signatures))
    return ChainVerificationResult(
        valid=all(check.passed for check in checks),
        entry_count=1,
        checks=checks,
        entries=(entry,),
    )


def check_version_sequence(entries: tuple[LicenseEntry, ...]) -> VerificationCheck:
    versions = [entry.version for entry in entries]
    expected = list(range(len(versions), 0, -1))
    passed = versions == expected
    return VerificationCheck(
        "version_sequence",
        "Entry versions descend by one to v1",
        passed,
        error=None if passed else f"Got versions {versions}",
    )


def verify_chain(
    entries: Iterable[LicenseEntry],
    root: ContentReference,
    gateway: StorageGateway,
    *,
    verify_signatures: bool = False,
) -> ChainVerificationResult:
    ordered = tuple(entries)
    checks = [check_version_sequence(ordered)]
    for entry in ordered:
        for check in entry_checks(entry, root, gateway, verify_signatures=verify_signatures):
            checks.append(
                VerificationCheck(
                    f"v{entry.version}.{check.id}",
                    f"v{entry.version}: {check.description}",
                    check.passed,
                    check.error,
                    check.details,
                )
            )
    return ChainVerificationResult(
        valid=all(check.passed for check in checks),
        entry_count=len(ordered),
        checks=tuple(checks),
        entries=ordered,
    )


def check_to_dict(check: VerificationCheck) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": check.id,
        "description": check.description,
        "passed": check.passed,
    }
    if check.error is not None:
        payload["error"] = check.error
    if check.details is not None:
        payload["details"] = check.details
    return payload


def as_dict(result: ChainVerificationResult) -> dict[str, object]:
    return {
        "valid": result.valid,
        "entry_count": result.entry_count,
        "checks": [check_to_dict(check) for check in result.checks],
        "versions": [entry.version for entry in result.entries],
    }
