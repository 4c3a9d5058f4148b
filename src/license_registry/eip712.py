"""EIP-712 typed-data attestation for license entries.

The signing domain carries only a name and a version. There is no chain id, so
a signature over an entry is valid on every chain; the entry content itself is
chain-agnostic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data

from .content import format_content_uri
from .entry import SIGNATURE_TYPE_EIP712, LicenseEntry, Signature, add_signature, without_signatures
from .hashing import is_valid_sha256, strip_hex_prefix

LICENSE_ENTRY_DOMAIN: Mapping[str, str] = {
    "name": "CommonGround License Registry",
    "version": "1",
}

EIP712_DOMAIN_TYPE = (
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
)

PRIMARY_TYPE = "LicenseEntry"

LICENSE_ENTRY_TYPES: Mapping[str, tuple[Mapping[str, str], ...]] = {
    PRIMARY_TYPE: (
        {"name": "schema", "type": "string"},
        {"name": "version", "type": "uint256"},
        {"name": "created_at", "type": "string"},
        {"name": "effective_date", "type": "string"},
        {"name": "license_spdx", "type": "string"},
        {"name": "license_text_sha256", "type": "bytes32"},
        {"name": "prev_entry_hash", "type": "string"},
    ),
}


@dataclass(frozen=True)
class TypedDataPayload:
    domain: Mapping[str, str]
    types: Mapping[str, tuple[Mapping[str, str], ...]]
    primary_type: str
    message: Mapping[str, Any]


def prev_entry_hash(entry: LicenseEntry) -> str:
    return format_content_uri(entry.prev_entry_ref) if entry.prev_entry_ref else ""


def _bytes32_hex(value: str) -> str:
    if not is_valid_sha256(value):
        raise ValueError(f"Not a 32-byte hex digest: {value!r}")
    return "0x" + strip_hex_prefix(value).lower()


def prepare_entry_for_signing(entry: LicenseEntry) -> TypedDataPayload:
    if entry.license is None:
        raise ValueError("Entry has no license information to sign")
    return TypedDataPayload(
        domain=dict(LICENSE_ENTRY_DOMAIN),
        types=dict(LICENSE_ENTRY_TYPES),
        primary_type=PRIMARY_TYPE,
        message={
            "schema": entry.schema,
            "version": entry.version,
            "created_at": entry.created_at,
            "effective_date": entry.effective_date,
            "license_spdx": entry.license.spdx,
            "license_text_sha256": _bytes32_hex(entry.license.text_sha256),
            "prev_entry_hash": prev_entry_hash(entry),
        },
    )


def typed_data(entry: LicenseEntry) -> dict[str, Any]:
    """Full ``eth_signTypedData_v4`` document for an external wallet."""
    payload = prepare_entry_for_signing(entry)
    return {
        "types": {
            "EIP712Domain": [dict(field) for field in EIP712_DOMAIN_TYPE],
            **{name: [dict(field) for field in fields] for name, fields in payload.types.items()},
        },
        "primaryType": payload.primary_type,
        "domain": dict(payload.domain),
        "message": dict(payload.message),
    }


def _signable(entry: LicenseEntry) -> SignableMessage:
    document = typed_data(entry)
    message = dict(document["message"])
    message["license_text_sha256"] = bytes.fromhex(strip_hex_prefix(message["license_text_sha256"]))
    document["message"] = message
    return encode_typed_data(full_message=document)


def format_signature(signer: str, sig: str) -> Signature:
    return Signature(signer=signer.lower(), sig=sig, type=SIGNATURE_TYPE_EIP712)


def sign_entry(entry: LicenseEntry, private_key: str | bytes) -> Signature:
    account = Account.from_key(private_key)
    signed = Account.sign_message(_signable(without_signatures(entry)), private_key=account.key)
    return format_signature(account.address, "0x" + bytes(signed.signature).hex())


def sign_and_attach(entry: LicenseEntry, private_key: str | bytes) -> LicenseEntry:
    return add_signature(entry, sign_entry(entry, private_key))


def recover_entry_signer(entry: LicenseEntry, sig: str) -> str:
    """Recover the lowercase address that produced ``sig`` over ``entry``.

    Raises ``ValueError`` when the payload cannot be built or the signature is
    malformed. The caller compares the result with the declared signer.
    """
    signable = _signable(without_signatures(entry))
    try:
        recovered = Account.recover_message(signable, signature=sig)
    except Exception as exc:
        raise ValueError(f"Signature recovery failed: {exc}") from exc
    return recovered.lower()
