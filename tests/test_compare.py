import unittest
from dataclasses import replace

from license_registry.chain import load_registry
from license_registry.compare import as_dict, compare_registries, fetch_registry
from license_registry.gateway import StorageGateway
from license_registry.manifest import build_manifest

from registry_fixtures import (
    CURRENT_CID,
    CURRENT_ROOT,
    GATEWAY,
    PROPOSED_CID,
    PROPOSED_ROOT,
    FakeOpener,
    make_entry,
    registry_files,
)


class CompareRegistriesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.opener = FakeOpener()
        self.gateway = StorageGateway("ipfs", (GATEWAY,), opener=self.opener)
        self.current_entries = [make_entry(v) for v in (1, 2)]
        self.opener.serve(CURRENT_CID, registry_files(self.current_entries))
        self.current = load_registry(self.gateway, CURRENT_ROOT).manifest

    def _compare(self, proposed_entries, **kwargs):
        self.opener.serve(PROPOSED_CID, registry_files(proposed_entries, **kwargs))
        proposed = fetch_registry(self.gateway, PROPOSED_ROOT).manifest
        return compare_registries(self.current, proposed, PROPOSED_ROOT, self.gateway)

    def _check(self, result, check_id):
        return next(check for check in result.checks if check.id == check_id)

    def test_one_new_entry(self) -> None:
        result = self._compare(self.current_entries + [make_entry(3)])
        self.assertTrue(result.valid)
        self.assertIn("1 new entry", result.summary)
        self.assertEqual([entry.version for entry in result.new_entries], [3])
        self.assertEqual(result.removed_entries, ())
        self.assertEqual(result.modified_entries, ())
        self.assertTrue(self._check(result, "hash_v3").passed)

    def test_several_new_entries(self) -> None:
        result = self._compare(self.current_entries + [make_entry(3), make_entry(4)])
        self.assertTrue(result.valid)
        self.assertEqual(result.summary, "Valid update with 2 new entries")

    def test_no_changes(self) -> None:
        result = self._compare(self.current_entries)
        self.assertTrue(result.valid)
        self.assertEqual(result.summary, "Valid (no changes)")
        self.assertEqual(self._check(result, "new_entries").details, "No new entries")

    def test_removed_entry(self) -> None:
        result = self._compare([make_entry(1)])
        self.assertFalse(result.valid)
        self.assertEqual([entry.version for entry in result.removed_entries], [2])
        self.assertEqual(result.summary, "Invalid: 1 entry removed")
        preserved = self._check(result, "entries_preserved")
        self.assertFalse(preserved.passed)
        self.assertEqual(preserved.details, "Removed: v2")
        self.assertFalse(self._check(result, "version_progression").passed)

    def test_modified_spdx(self) -> None:
        result = self._compare([make_entry(1), make_entry(2, "Apache-2.0")])
        self.assertFalse(result.valid)
        self.assertEqual(len(result.modified_entries), 1)
        modification = result.modified_entries[0]
        self.assertEqual(modification.old.version, 2)
        self.assertIn("license.spdx: MIT → Apache-2.0", modification.differences)
        self.assertIn("license.text_sha256: hash changed", modification.differences)
        self.assertEqual(result.summary, "Invalid: 1 entry modified")

    def test_modified_effective_date(self) -> None:
        result = self._compare([make_entry(1), make_entry(2, effective_date="2030-01-01")])
        self.assertFalse(result.valid)
        self.assertEqual(
            result.modified_entries[0].differences,
            ("effective_date: 2024-02-01 → 2030-01-01",),
        )

    def test_hash_case_is_not_a_modification(self) -> None:
        entry = make_entry(2)
        upper = replace(entry, license=replace(entry.license, text_sha256=entry.license.text_sha256.upper()))
        result = self._compare([make_entry(1), upper])
        self.assertTrue(result.valid)
        self.assertEqual(result.modified_entries, ())

    def test_new_entry_with_bad_hash(self) -> None:
        result = self._compare(self.current_entries + [make_entry(3)], texts={3: "not the declared text"})
        self.assertFalse(result.valid)
        self.assertEqual(result.summary, "Invalid: verification failed")
        self.assertEqual([entry.version for entry in result.new_entries], [3])
        self.assertEqual(self._check(result, "hash_v3").error, "Hash mismatch")

    def test_name_change_is_reported_but_not_critical(self) -> None:
        result = self._compare(self.current_entries + [make_entry(3)], name="Renamed Registry")
        self.assertTrue(result.valid)
        check = self._check(result, "name_consistent")
        self.assertFalse(check.passed)
        self.assertIn("Renamed Registry", check.error)

    def test_incomplete_proposed_history(self) -> None:
        entries = [make_entry(v) for v in (1, 2, 3)]
        proposed = build_manifest("Example Registry", entries[1:])
        self.opener.serve(PROPOSED_CID, registry_files(entries))
        result = compare_registries(self.current, proposed, PROPOSED_ROOT, self.gateway)
        self.assertFalse(result.valid)
        self.assertFalse(self._check(result, "history_complete").passed)
        self.assertEqual([entry.version for entry in result.removed_entries], [1])

    def test_as_dict(self) -> None:
        payload = as_dict(self._compare([make_entry(1), make_entry(2, "Apache-2.0")]))
        self.assertFalse(payload["valid"])
        self.assertEqual(payload["modified_entries"][0]["version"], 2)
        self.assertEqual(payload["checks"][0]["id"], "schema")


if __name__ == "__main__":
    unittest.main()
