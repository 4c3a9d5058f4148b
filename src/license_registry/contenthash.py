"""ENS contenthash and CID codec (EIP-1577 / ENSIP-7).

A contenthash is ``varint(namespace codec) || address bytes``. The address is a
CID for the IPFS and IPNS namespaces, a Swarm manifest CID (or bare 32-byte
digest) for Swarm, and a raw 32-byte transaction id for Arweave.

Decoding never raises: anything unknown or malformed yields ``None`` so callers
can treat "no usable content pointer" as data.
"""

from __future__ import annotations

import base64
import logging

import base58

from .content import (
    PROTOCOL_ARWEAVE,
    PROTOCOL_IPFS,
    PROTOCOL_IPNS,
    PROTOCOL_SWARM,
    ContentReference,
)

logger = logging.getLogger(__name__)

IPFS_NS = 0xE3
SWARM_NS = 0xE4
IPNS_NS = 0xE5
ARWEAVE_NS = 0xB29910

CID_VERSION_1 = 0x01
DAG_PB = 0x70
LIBP2P_KEY = 0x72
SWARM_MANIFEST = 0xFA
SHA2_256 = 0x12
KECCAK_256 = 0x1B

CIDV0_LENGTH = 34
MAX_VARINT_BYTES = 9

_CODEC_PROTOCOLS = {
    IPFS_NS: PROTOCOL_IPFS,
    IPNS_NS: PROTOCOL_IPNS,
    SWARM_NS: PROTOCOL_SWARM,
    ARWEAVE_NS: PROTOCOL_ARWEAVE,
}
_PROTOCOL_CODECS = {protocol: codec for codec, protocol in _CODEC_PROTOCOLS.items()}


def read_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Read an unsigned LEB128 varint, returning ``(value, next_offset)``."""
    value = 0
    shift = 0
    index = offset
    while index < len(data):
        byte = data[index]
        value |= (byte & 0x7F) << shift
        index += 1
        if not byte & 0x80:
            return value, index
        shift += 7
        if index - offset >= MAX_VARINT_BYTES:
            raise ValueError("varint too long")
    raise ValueError("truncated varint")


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").lower().rstrip("=")


def _b32decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 8)
    return base64.b32decode(text.upper() + padding)


def _b36decode(text: str) -> bytes:
    number = int(text, 36)
    return number.to_bytes((number.bit_length() + 7) // 8, "big")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _multihash_digest(data: bytes, offset: int) -> tuple[int, bytes]:
    code, offset = read_varint(data, offset)
    length, offset = read_varint(data, offset)
    digest = data[offset:]
    if length == 0 or len(digest) != length:
        raise ValueError("multihash length mismatch")
    return code, digest


def is_cidv0_bytes(data: bytes) -> bool:
    return len(data) == CIDV0_LENGTH and data[0] == SHA2_256 and data[1] == 0x20


def split_cid(data: bytes) -> tuple[int, int, int, bytes]:
    """Return ``(version, codec, multihash code, digest)`` for binary CID bytes."""
    if is_cidv0_bytes(data):
        return 0, DAG_PB, SHA2_256, data[2:]
    version, offset = read_varint(data)
    if version != CID_VERSION_1:
        raise ValueError(f"unsupported CID version: {version}")
    codec, offset = read_varint(data, offset)
    code, digest = _multihash_digest(data, offset)
    return version, codec, code, digest


def cid_to_string(data: bytes) -> str | None:
    """Render binary CID bytes: CIDv0 as base58btc, CIDv1 as multibase base32."""
    try:
        version, _, _, _ = split_cid(data)
    except ValueError:
        return None
    if version == 0:
        return base58.b58encode(data).decode("ascii")
    return "b" + _b32encode(data)


def parse_cid(text: str) -> bytes:
    """Parse a CID string into its binary form, raising ``ValueError`` if malformed."""
    value = text.strip()
    if not value:
        raise ValueError("empty CID")
    if value.startswith("Qm") and len(value) == 46:
        data = base58.b58decode(value)
        if not is_cidv0_bytes(data):
            raise ValueError("invalid CIDv0 multihash")
        return data
    prefix, body = value[0], value[1:]
    if not body:
        raise ValueError("empty CID body")
    if prefix in ("b", "B"):
        data = _b32decode(body)
    elif prefix == "z":
        data = base58.b58decode(body)
    elif prefix in ("f", "F"):
        data = bytes.fromhex(body)
    elif prefix in ("k", "K"):
        data = _b36decode(body.lower())
    else:
        raise ValueError(f"unsupported multibase prefix: {prefix}")
    version, _, _, _ = split_cid(data)
    if version != CID_VERSION_1:
        raise ValueError("multibase CIDs must be version 1")
    return data


def is_valid_cid(text: str) -> bool:
    if not isinstance(text, str):
        return False
    try:
        parse_cid(text)
    except ValueError:
        return False
    return True


def normalize_cid(text: str) -> str:
    """Return the CIDv1 base32 form of ``text``, or ``text`` unchanged if it is not a CID."""
    try:
        data = parse_cid(text)
    except ValueError:
        return text
    if is_cidv0_bytes(data):
        data = encode_varint(CID_VERSION_1) + encode_varint(DAG_PB) + data
    return "b" + _b32encode(data)


def _swarm_hash(content: bytes) -> str | None:
    try:
        _, _, code, digest = split_cid(content)
    except ValueError:
        code, digest = None, b""
    if code == KECCAK_256 and len(digest) == 32:
        return digest.hex()
    if len(content) >= 32:
        return content[:32].hex()
    return None


def _coerce_raw(raw: bytes | str | None) -> bytes | None:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    value = raw.strip()
    if value.startswith(("0x", "0X")):
        value = value[2:]
    if not value:
        return None
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def decode_contenthash(raw: bytes | str | None) -> ContentReference | None:
    data = _coerce_raw(raw)
    if data is None or len(data) < 2:
        return None
    try:
        codec, offset = read_varint(data)
    except ValueError:
        logger.debug("Contenthash has a malformed codec prefix")
        return None
    content = data[offset:]
    protocol = _CODEC_PROTOCOLS.get(codec)
    if protocol is None:
        logger.debug("Unsupported contenthash codec 0x%x", codec)
        return None

    if protocol in (PROTOCOL_IPFS, PROTOCOL_IPNS):
        hash_value = cid_to_string(content)
    elif protocol == PROTOCOL_SWARM:
        hash_value = _swarm_hash(content)
    else:
        hash_value = _b64url_encode(content) if len(content) == 32 else None

    if hash_value is None:
        logger.debug("Contenthash payload for %s could not be decoded", protocol)
        return None
    return ContentReference(protocol=protocol, hash=hash_value)


def encode_contenthash(ref: ContentReference) -> bytes:
    """Encode a content reference as ENS contenthash bytes."""
    codec = _PROTOCOL_CODECS.get(ref.protocol)
    if codec is None:
        raise ValueError(f"Protocol has no contenthash codec: {ref.protocol}")
    prefix = encode_varint(codec)
    if ref.protocol in (PROTOCOL_IPFS, PROTOCOL_IPNS):
        return prefix + parse_cid(ref.hash)
    if ref.protocol == PROTOCOL_SWARM:
        digest = bytes.fromhex(ref.hash)
        if len(digest) != 32:
            raise ValueError("Swarm hash must be 32 bytes")
        return (
            prefix
            + encode_varint(CID_VERSION_1)
            + encode_varint(SWARM_MANIFEST)
            + encode_varint(KECCAK_256)
            + encode_varint(32)
            + digest
        )
    tx_id = _b64url_decode(ref.hash)
    if len(tx_id) != 32:
        raise ValueError("Arweave transaction id must be 32 bytes")
    return prefix + tx_id
