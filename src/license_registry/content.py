from __future__ import annotations

import re
from dataclasses import dataclass

PROTOCOL_IPFS = "ipfs"
PROTOCOL_IPNS = "ipns"
PROTOCOL_SWARM = "bzz"
PROTOCOL_ARWEAVE = "ar"
PROTOCOL_ENS = "ens"

STORAGE_PROTOCOLS = (PROTOCOL_IPFS, PROTOCOL_IPNS, PROTOCOL_SWARM, PROTOCOL_ARWEAVE)
ALL_PROTOCOLS = STORAGE_PROTOCOLS + (PROTOCOL_ENS,)

_CONTENT_URI_RE = re.compile(r"^(ipfs|ipns|bzz|ar)://(.+)$", re.DOTALL)


@dataclass(frozen=True)
class ContentReference:
    protocol: str
    hash: str

    def __post_init__(self) -> None:
        if self.protocol not in ALL_PROTOCOLS:
            raise ValueError(f"Unknown storage protocol: {self.protocol}")
        if not self.hash:
            raise ValueError("Content reference hash is empty")


def format_content_uri(ref: ContentReference) -> str:
    return f"{ref.protocol}://{ref.hash}"


def parse_content_uri(uri: str) -> ContentReference | None:
    match = _CONTENT_URI_RE.match(uri)
    if match is None:
        return None
    return ContentReference(protocol=match.group(1), hash=match.group(2))


def content_ref_to_dict(ref: ContentReference) -> dict[str, str]:
    return {"protocol": ref.protocol, "hash": ref.hash}


def content_ref_from_dict(payload: object) -> ContentReference | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ValueError("Content reference must be an object")
    protocol = payload.get("protocol")
    hash_value = payload.get("hash")
    if not isinstance(protocol, str) or not isinstance(hash_value, str):
        raise ValueError("Content reference requires protocol and hash strings")
    return ContentReference(protocol=protocol, hash=hash_value)
