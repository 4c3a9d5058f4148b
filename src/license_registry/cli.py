from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from datetime import date
from pathlib import Path

from . import __version__
from .compare import as_dict as comparison_as_dict
from .config import RegistryConfig, config_from_env, parse_root_override
from .content import format_content_uri
from .contenthash import decode_contenthash
from .eip712 import sign_and_attach, typed_data
from .entry import LicenseEntry, entry_from_bytes, entry_to_json
from .errors import RegistryError
from .publisher import (
    RegistryPackage,
    create_registry_package,
    generate_package_filename,
    governance_info_for_doc,
    license_info_for_text,
    next_entry,
    write_registry_directory,
)
from .registry import RegistryReader, as_dict as state_as_dict
from .verifier import as_dict as verification_as_dict


def _log(args: argparse.Namespace, message: str) -> None:
    if not getattr(args, "quiet", False):
        print(message)


def _print_json(args: argparse.Namespace, payload: object) -> None:
    _log(args, json.dumps(payload, indent=2, ensure_ascii=False))


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _require_file(path: Path, label: str) -> None:
    if not path.exists():
        print(f"{label} not found: {path}")
        raise SystemExit(2)


def _require_output(path: Path, args: argparse.Namespace, label: str = "Output") -> None:
    if path.exists() and not getattr(args, "force", False):
        print(f"{label} exists. Use --force to overwrite.")
        raise SystemExit(2)


def _config(args: argparse.Namespace) -> RegistryConfig:
    config = config_from_env()
    overrides: dict[str, object] = {}
    if getattr(args, "name", None):
        overrides["ens_name"] = args.name
    if getattr(args, "cid", None):
        overrides["root_override"] = parse_root_override(args.cid)
    if getattr(args, "gateway", None):
        overrides["gateway_origins"] = tuple(item.rstrip("/") for item in args.gateway)
    if getattr(args, "timeout_ms", None):
        overrides["request_timeout_ms"] = args.timeout_ms
    if getattr(args, "resolution", None):
        overrides["resolution"] = args.resolution
    return replace(config, **overrides) if overrides else config


def _reader(args: argparse.Namespace) -> RegistryReader:
    contenthash = getattr(args, "contenthash", None)
    lookup = (lambda name: contenthash) if contenthash else None
    return RegistryReader(_config(args), lookup=lookup)


def _load(args: argparse.Namespace) -> RegistryReader | None:
    try:
        reader = _reader(args)
    except ValueError as exc:
        print(f"Configuration error: {exc}")
        return None
    state = reader.refresh()
    if not state.is_loaded:
        if state.error:
            print(f"Registry {state.status.value}: {state.error}")
        else:
            print(f"Registry {state.status.value}: {state.ens_name or 'unknown name'}")
        return None
    if state.missing_versions:
        _log(args, f"Warning: versions unreachable: {', '.join(f'v{v}' for v in state.missing_versions)}")
    return reader


def _cmd_show(args: argparse.Namespace) -> int:
    try:
        reader = _reader(args)
    except ValueError as exc:
        print(f"Configuration error: {exc}")
        return 2
    state = reader.refresh()
    _print_json(args, state_as_dict(state))
    return 0 if state.is_loaded else 2


def _cmd_verify(args: argparse.Namespace) -> int:
    reader = _load(args)
    if reader is None:
        return 2
    if args.chain:
        result = reader.verify_current(verify_signatures=args.signatures)
    else:
        entry = None
        if args.entry_version is not None:
            entry = reader.state.manifest.entries_by_version().get(args.entry_version)
            if entry is None:
                print(f"Version not found: v{args.entry_version}")
                return 2
        result = reader.verify_entry(entry, verify_signatures=args.signatures)
    _print_json(args, verification_as_dict(result))
    return 0 if result.valid else 2


def _cmd_compare(args: argparse.Namespace) -> int:
    reader = _load(args)
    if reader is None:
        return 2
    try:
        result = reader.compare(args.proposed_cid)
    except (ValueError, RegistryError) as exc:
        print(f"Comparison failed: {exc}")
        return 2
    _print_json(args, comparison_as_dict(result))
    _log(args, result.summary)
    return 0 if result.valid else 2


def _cmd_decode_contenthash(args: argparse.Namespace) -> int:
    ref = decode_contenthash(args.contenthash_hex)
    if ref is None:
        print("No usable contenthash")
        return 2
    _log(args, format_content_uri(ref))
    return 0


def _read_entry(path: Path) -> LicenseEntry:
    _require_file(path, "Entry")
    try:
        return entry_from_bytes(path.read_bytes())
    except (ValueError, RegistryError) as exc:
        print(f"Invalid entry: {exc}")
        raise SystemExit(2)


def _cmd_typed_data(args: argparse.Namespace) -> int:
    entry = _read_entry(Path(args.entry))
    try:
        document = typed_data(entry)
    except ValueError as exc:
        print(f"Entry cannot be signed: {exc}")
        return 2
    _print_json(args, document)
    return 0


def _cmd_sign_entry(args: argparse.Namespace) -> int:
    entry_path = Path(args.entry)
    entry = _read_entry(entry_path)
    key_path = Path(args.private_key)
    _require_file(key_path, "Private key")
    output_path = Path(args.output) if args.output else entry_path
    if args.output:
        _require_output(output_path, args)
    try:
        signed = sign_and_attach(entry, key_path.read_text().strip())
    except ValueError as exc:
        print(f"Signing failed: {exc}")
        return 2
    output_path.write_text(entry_to_json(signed) + "\n")
    _log(args, f"Signed by {signed.signatures[-1].signer}: {output_path}")
    return 0


def _cmd_package(args: argparse.Namespace) -> int:
    license_path = Path(args.license_file)
    _require_file(license_path, "License file")
    license_text = license_path.read_text(encoding="utf-8")

    governance_doc = None
    governance_name = None
    governance = None
    if args.governance_file:
        governance_path = Path(args.governance_file)
        _require_file(governance_path, "Governance document")
        governance_doc = governance_path.read_bytes()
        governance_name = governance_path.name
        governance = governance_info_for_doc(governance_doc, governance_name)

    current = None
    current_root = None
    previous: tuple = ()
    if args.from_current:
        reader = _load(args)
        if reader is None:
            return 2
        state = reader.state
        current = state.current_entry
        current_root = state.content_ref
        previous = state.entries

    entry = next_entry(
        current,
        args.effective_date,
        license_info_for_text(args.spdx, license_text, license_path.name),
        current_root=current_root,
        governance=governance,
    )
    package = RegistryPackage(
        name=args.registry_name,
        new_entry=entry,
        license_text=license_text,
        license_file_name=license_path.name,
        description=args.description,
        governance_doc=governance_doc,
        governance_file_name=governance_name,
        previous_entries=tuple(previous),
    )

    try:
        if args.directory:
            output = write_registry_directory(package, Path(args.directory), inline_entries=args.inline)
        else:
            output_path = Path(args.output or generate_package_filename(args.registry_name, entry.version))
            _require_output(output_path, args)
            output = create_registry_package(package, output_path, inline_entries=args.inline)
    except ValueError as exc:
        print(f"Package failed: {exc}")
        return 2
    _log(args, f"Registry v{entry.version} package written to: {output}")
    return 0


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--quiet", action="store_true")
    parser.add_argument("--verbose", action="store_true")


def _add_registry_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", help="Registry name, e.g. license.example.eth")
    parser.add_argument("--cid", help="Registry root CID or content URI; skips name resolution")
    parser.add_argument("--contenthash", help="Raw contenthash record for --name (hex)")
    parser.add_argument("--gateway", action="append", help="IPFS gateway origin (repeatable)")
    parser.add_argument("--timeout-ms", type=int, help="Per-request timeout in milliseconds")
    parser.add_argument("--resolution", choices=["contenthash", "limo"], help="Name resolution strategy")
    _add_common_args(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="license-registry", description="License registry CLI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Load and print the current registry")
    _add_registry_args(show)
    show.set_defaults(func=_cmd_show)

    verify = sub.add_parser("verify", help="Verify license hashes of the current registry")
    verify.add_argument("--entry-version", type=int, help="Verify this version instead of the head")
    verify.add_argument("--chain", action="store_true", help="Verify every reachable entry")
    verify.add_argument("--signatures", action="store_true", help="Also verify EIP-712 signatures")
    _add_registry_args(verify)
    verify.set_defaults(func=_cmd_verify)

    compare = sub.add_parser("compare", help="Compare a proposed registry CID with the current one")
    compare.add_argument("proposed_cid", help="Root CID of the proposed registry")
    _add_registry_args(compare)
    compare.set_defaults(func=_cmd_compare)

    decode = sub.add_parser("decode-contenthash", help="Decode a raw contenthash record")
    decode.add_argument("contenthash_hex", help="Hex-encoded contenthash bytes")
    _add_common_args(decode)
    decode.set_defaults(func=_cmd_decode_contenthash)

    typed = sub.add_parser("typed-data", help="Print the EIP-712 typed data for an entry")
    typed.add_argument("entry", help="Path to entry JSON")
    _add_common_args(typed)
    typed.set_defaults(func=_cmd_typed_data)

    sign_entry = sub.add_parser("sign-entry", help="Sign an entry with a local secp256k1 key")
    sign_entry.add_argument("entry", help="Path to entry JSON")
    sign_entry.add_argument("--private-key", required=True, help="Path to a file holding the hex private key")
    sign_entry.add_argument("--output", help="Write the signed entry here instead of in place")
    sign_entry.add_argument("--force", action="store_true", help="Overwrite existing output")
    _add_common_args(sign_entry)
    sign_entry.set_defaults(func=_cmd_sign_entry)

    package = sub.add_parser("package", help="Build a publishable registry package")
    package.add_argument("--registry-name", required=True, help="Human-readable registry name")
    package.add_argument("--spdx", required=True, help="SPDX identifier of the license")
    package.add_argument("--license-file", required=True, help="Path to the license text")
    package.add_argument("--effective-date", default=date.today().isoformat(), help="YYYY-MM-DD")
    package.add_argument("--governance-file", help="Path to the governance decision document")
    package.add_argument("--description", help="Registry description")
    package.add_argument("--from-current", action="store_true", help="Append to the currently published registry")
    package.add_argument("--inline", action="store_true", help="Embed entries in registry.json")
    output_group = package.add_mutually_exclusive_group()
    output_group.add_argument("--output", help="Output zip path")
    output_group.add_argument("--directory", help="Write the package tree to a directory")
    package.add_argument("--force", action="store_true", help="Overwrite existing output")
    _add_registry_args(package)
    package.set_defaults(func=_cmd_package)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
