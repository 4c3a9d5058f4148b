import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock
from zipfile import ZipFile

from eth_account import Account

from license_registry.cli import main
from license_registry.eip712 import recover_entry_signer
from license_registry.entry import entry_from_bytes, entry_to_json

from registry_fixtures import make_entry

IPFS_CONTENTHASH = "e3010170122029f2d17be6139079dc48696d1f582a8530eb9805b561eda517e22a892c7e3f1f"


def _run(argv: list[str]) -> tuple[int, str]:
    buffer = io.StringIO()
    with mock.patch.dict("os.environ", {}, clear=True), redirect_stdout(buffer):
        try:
            code = main(argv)
        except SystemExit as exc:
            code = exc.code
    return code, buffer.getvalue()


class CliTests(unittest.TestCase):
    def test_decode_contenthash(self) -> None:
        code, output = _run(["decode-contenthash", IPFS_CONTENTHASH])
        self.assertEqual(code, 0)
        self.assertEqual(output.strip(), "ipfs://bafybeibj6lixxzqtsb45ysdjnupvqkufgdvzqbnvmhw2kf7cfkesy7r7d4")

        code, output = _run(["decode-contenthash", "ff01abcd"])
        self.assertEqual(code, 2)

    def test_show_without_configuration(self) -> None:
        code, output = _run(["show"])
        self.assertEqual(code, 2)
        state = json.loads(output)
        self.assertEqual(state["status"], "error")
        self.assertIn("No registry name configured", state["error"])

    def test_typed_data_and_sign_entry(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            entry_path = temp_path / "v2.json"
            entry_path.write_text(entry_to_json(make_entry(2)))
            account = Account.create()
            key_path = temp_path / "key.hex"
            key_path.write_text(account.key.hex())

            code, output = _run(["typed-data", str(entry_path)])
            self.assertEqual(code, 0)
            document = json.loads(output)
            self.assertEqual(document["message"]["version"], 2)

            signed_path = temp_path / "v2.signed.json"
            code, _ = _run(["sign-entry", str(entry_path), "--private-key", str(key_path), "--output", str(signed_path)])
            self.assertEqual(code, 0)
            signed = entry_from_bytes(signed_path.read_bytes())
            self.assertEqual(signed.signatures[0].signer, account.address.lower())
            self.assertEqual(recover_entry_signer(signed, signed.signatures[0].sig), account.address.lower())

            code, _ = _run(["sign-entry", str(entry_path), "--private-key", str(key_path), "--output", str(signed_path)])
            self.assertEqual(code, 2)

    def test_package_zip(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            license_path = temp_path / "LICENSE.md"
            license_path.write_text("MIT License\n")
            output = temp_path / "registry.zip"
            code, _ = _run(
                [
                    "package",
                    "--registry-name",
                    "Example",
                    "--spdx",
                    "MIT",
                    "--license-file",
                    str(license_path),
                    "--effective-date",
                    "2025-01-01",
                    "--output",
                    str(output),
                    "--quiet",
                ]
            )
            self.assertEqual(code, 0)
            with ZipFile(output) as archive:
                self.assertIn("entries/v1.json", archive.namelist())
                entry = entry_from_bytes(archive.read("entries/v1.json"))
        self.assertEqual(entry.version, 1)
        self.assertEqual(entry.license.spdx, "MIT")


if __name__ == "__main__":
    unittest.main()
