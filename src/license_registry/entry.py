from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Iterable

from .content import ContentReference, content_ref_from_dict, content_ref_to_dict
from .errors import SchemaError
from .hashing import is_valid_sha256

ENTRY_SCHEMA = "commonground-license-entry/v1"
SIGNATURE_TYPE_EIP712 = "eip712"


@dataclass(frozen=True)
class LicenseInfo:
    spdx: str
    text_path: str
    text_sha256: str


@dataclass(frozen=True)
class GovernanceInfo:
    decision_path: str
    decision_sha256: str


@dataclass(frozen=True)
class Signature:
    signer: str
    sig: str
    type: str = SIGNATURE_TYPE_EIP712


@dataclass(frozen=True)
class LicenseEntry:
    schema: str
    version: int
    created_at: str
    effective_date: str
    license: LicenseInfo | None
    governance: GovernanceInfo | None = None
    prev_entry_ref: ContentReference | None = None
    signatures: tuple[Signature, ...] = ()

    @property
    def is_genesis(self) -> bool:
        return self.version == 1


def build_entry(
    version: int,
    effective_date: str,
    license: LicenseInfo,
    *,
    governance: GovernanceInfo | None = None,
    prev_entry_ref: ContentReference | None = None,
    created_at: str | None = None,
) -> LicenseEntry:
    if version < 1:
        raise ValueError("Entry version must be a positive integer")
    return LicenseEntry(
        schema=ENTRY_SCHEMA,
        version=version,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
        effective_date=effective_date,
        license=license,
        governance=governance,
        prev_entry_ref=prev_entry_ref,
    )


def add_signature(entry: LicenseEntry, signature: Signature) -> LicenseEntry:
    return replace(entry, signatures=entry.signatures + (signature,))


def without_signatures(entry: LicenseEntry) -> LicenseEntry:
    return replace(entry, signatures=())


def _optional_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _license_from_dict(payload: object) -> LicenseInfo | None:
    if not isinstance(payload, dict):
        return None
    return LicenseInfo(
        spdx=_optional_str(payload, "spdx"),
        text_path=_optional_str(payload, "text_path"),
        text_sha256=_optional_str(payload, "text_sha256"),
    )


def _governance_from_dict(payload: object) -> GovernanceInfo | None:
    if not isinstance(payload, dict):
        return None
    return GovernanceInfo(
        decision_path=_optional_str(payload, "decision_path"),
        decision_sha256=_optional_str(payload, "decision_sha256"),
    )


def _signatures_from_list(payload: object) -> tuple[Signature, ...]:
    if not isinstance(payload, list):
        return ()
    signatures: list[Signature] = []
    for item in payload:
        if not isinstance(item, dict):
            raise SchemaError("Entry signature must be an object")
        signatures.append(
            Signature(
                signer=_optional_str(item, "signer"),
                sig=_optional_str(item, "sig"),
                type=item.get("type", SIGNATURE_TYPE_EIP712),
            )
        )
    return tuple(signatures)


def entry_from_dict(payload: object) -> LicenseEntry:
    """Decode an entry, leaving absent fields empty for the verifier to report."""
    if not isinstance(payload, dict):
        raise SchemaError("License entry must be a JSON object")
    version = payload.get("version")
    try:
        prev_entry_ref = content_ref_from_dict(payload.get("prev_entry_ref"))
    except ValueError as exc:
        raise SchemaError(f"Invalid prev_entry_ref: {exc}") from exc
    return LicenseEntry(
        schema=_optional_str(payload, "schema"),
        version=version if isinstance(version, int) and not isinstance(version, bool) else 0,
        created_at=_optional_str(payload, "created_at"),
        effective_date=_optional_str(payload, "effective_date"),
        license=_license_from_dict(payload.get("license")),
        governance=_governance_from_dict(payload.get("governance")),
        prev_entry_ref=prev_entry_ref,
        signatures=_signatures_from_list(payload.get("signatures")),
    )


def entry_from_bytes(data: bytes) -> LicenseEntry:
    return entry_from_dict(json.loads(data))


def entry_to_dict(entry: LicenseEntry) -> dict[str, object]:
    payload: dict[str, object] = {
        "schema": entry.schema,
        "version": entry.version,
        "created_at": entry.created_at,
        "effective_date": entry.effective_date,
        "prev_entry_ref": content_ref_to_dict(entry.prev_entry_ref) if entry.prev_entry_ref else None,
    }
    if entry.license is not None:
        payload["license"] = {
            "spdx": entry.license.spdx,
            "text_path": entry.license.text_path,
            "text_sha256": entry.license.text_sha256,
        }
    if entry.governance is not None:
        payload["governance"] = {
            "decision_path": entry.governance.decision_path,
            "decision_sha256": entry.governance.decision_sha256,
        }
    if entry.signatures:
        payload["signatures"] = [
            {"type": item.type, "signer": item.signer, "sig": item.sig} for item in entry.signatures
        ]
    return payload


def entry_to_bytes(entry: LicenseEntry) -> bytes:
    return json.dumps(entry_to_dict(entry), sort_keys=True, separators=(",", ":")).encode("utf-8")


def entry_to_json(entry: LicenseEntry) -> str:
    return json.dumps(entry_to_dict(entry), indent=2)


def entry_path(version: int) -> str:
    return f"/entries/v{version}.json"


def validate_entry(entry: LicenseEntry) -> list[str]:
    errors: list[str] = []
    if entry.schema != ENTRY_SCHEMA:
        errors.append("schema_invalid")
    if entry.version < 1:
        errors.append("version_missing")
    if not entry.effective_date:
        errors.append("effective_date_missing")
    else:
        try:
            date.fromisoformat(entry.effective_date[:10])
        except ValueError:
            errors.append("effective_date_invalid")
    if entry.created_at:
        try:
            datetime.fromisoformat(entry.created_at.replace("Z", "+00:00"))
        except ValueError:
            errors.append("created_at_invalid")
    if entry.license is None:
        errors.append("license_missing")
    else:
        if not entry.license.spdx:
            errors.append("license_spdx_missing")
        if not entry.license.text_path:
            errors.append("license_text_path_missing")
        if not is_valid_sha256(entry.license.text_sha256):
            errors.append("license_text_sha256_invalid")
    if entry.governance is not None and not is_valid_sha256(entry.governance.decision_sha256):
        errors.append("governance_sha256_invalid")
    if entry.is_genesis and entry.prev_entry_ref is not None:
        errors.append("genesis_has_prev_ref")
    return errors


def missing_required_fields(entry: LicenseEntry) -> list[str]:
    missing: list[str] = []
    if entry.version < 1:
        missing.append("version")
    if not entry.effective_date:
        missing.append("effective_date")
    if entry.license is None:
        missing.append("license")
    return missing


def sort_newest_first(entries: Iterable[LicenseEntry]) -> tuple[LicenseEntry, ...]:
    return tuple(sorted(entries, key=lambda item: item.version, reverse=True))
