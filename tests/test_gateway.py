import json
import unittest
from urllib.error import URLError

from license_registry.content import ContentReference
from license_registry.errors import GatewayError
from license_registry.gateway import EnsGateway, StorageGateway, gateway_for

from registry_fixtures import CURRENT_CID, GATEWAY, GATEWAYS, FakeOpener, make_config


class StorageGatewayTests(unittest.TestCase):
    def test_first_success_wins(self) -> None:
        opener = FakeOpener(
            {
                f"{GATEWAYS[0]}/ipfs/{CURRENT_CID}/registry.json": 503,
                f"{GATEWAYS[1]}/ipfs/{CURRENT_CID}/registry.json": b'{"ok": true}',
                f"{GATEWAYS[2]}/ipfs/{CURRENT_CID}/registry.json": b'{"ok": false}',
            }
        )
        gateway = StorageGateway("ipfs", GATEWAYS, 2.0, opener=opener)
        self.assertEqual(gateway.fetch_from_dir(CURRENT_CID, "registry.json"), {"ok": True})
        self.assertEqual(
            opener.urls(),
            [
                f"{GATEWAYS[0]}/ipfs/{CURRENT_CID}/registry.json",
                f"{GATEWAYS[1]}/ipfs/{CURRENT_CID}/registry.json",
            ],
        )
        self.assertEqual({timeout for _, timeout in opener.calls}, {2.0})

    def test_all_gateways_time_out(self) -> None:
        opener = FakeOpener(default=TimeoutError("timed out"))
        gateway = StorageGateway("ipfs", GATEWAYS, opener=opener)
        with self.assertRaises(GatewayError) as ctx:
            gateway.fetch_from_dir(CURRENT_CID, "/registry.json")
        error = ctx.exception
        self.assertEqual(error.attempted_origins, GATEWAYS)
        self.assertEqual(len(error.errors), 4)
        self.assertTrue(all(attempt.timed_out for attempt in error.attempts))
        self.assertFalse(error.looks_unpublished)
        self.assertEqual(error.hash, CURRENT_CID)
        self.assertEqual(error.path, "/registry.json")
        self.assertEqual(len(opener.calls), 4)

    def test_connection_timeout_inside_url_error(self) -> None:
        opener = FakeOpener(default=URLError(TimeoutError("connect timed out")))
        gateway = StorageGateway("ipfs", (GATEWAY,), opener=opener)
        with self.assertRaises(GatewayError) as ctx:
            gateway.fetch(CURRENT_CID)
        self.assertTrue(ctx.exception.attempts[0].timed_out)

    def test_not_found_everywhere_looks_unpublished(self) -> None:
        gateway = StorageGateway("ipfs", GATEWAYS[:2], opener=FakeOpener())
        with self.assertRaises(GatewayError) as ctx:
            gateway.fetch(CURRENT_CID, "/registry.json")
        self.assertTrue(ctx.exception.looks_unpublished)
        self.assertEqual([attempt.status for attempt in ctx.exception.attempts], [404, 404])

    def test_server_error_is_not_unpublished(self) -> None:
        opener = FakeOpener({f"{GATEWAY}/ipfs/{CURRENT_CID}": 500})
        gateway = StorageGateway("ipfs", (GATEWAY,), opener=opener)
        with self.assertRaises(GatewayError) as ctx:
            gateway.fetch(CURRENT_CID)
        self.assertFalse(ctx.exception.looks_unpublished)

    def test_malformed_json_is_value_error(self) -> None:
        opener = FakeOpener({f"{GATEWAY}/ipfs/{CURRENT_CID}/registry.json": b"<html>"})
        gateway = StorageGateway("ipfs", (GATEWAY,), opener=opener)
        with self.assertRaises(ValueError):
            gateway.fetch_from_dir(CURRENT_CID, "registry.json")

    def test_text_fetch(self) -> None:
        opener = FakeOpener({f"{GATEWAY}/ipfs/{CURRENT_CID}/licenses/LICENSE.md": "Licença\n".encode("utf-8")})
        gateway = StorageGateway("ipfs", (GATEWAY,), opener=opener)
        self.assertEqual(gateway.fetch_text_from_dir(CURRENT_CID, "licenses/LICENSE.md"), "Licença\n")

    def test_hash_validation(self) -> None:
        gateway = StorageGateway("ipfs", (GATEWAY,))
        self.assertTrue(gateway.is_valid_hash(CURRENT_CID))
        self.assertFalse(gateway.is_valid_hash("not-a-cid"))
        swarm = StorageGateway("bzz", (GATEWAY,))
        self.assertTrue(swarm.is_valid_hash("ab" * 32))
        self.assertFalse(swarm.is_valid_hash(CURRENT_CID))

    def test_constructor_validation(self) -> None:
        with self.assertRaises(ValueError):
            StorageGateway("ipfs", ())
        with self.assertRaises(ValueError):
            StorageGateway("ipfs", (GATEWAY,), 0)


class GatewayForTests(unittest.TestCase):
    def test_protocol_routing(self) -> None:
        config = make_config(gateway_origins=GATEWAYS)
        ipfs = gateway_for(ContentReference("ipfs", CURRENT_CID), config)
        self.assertEqual(ipfs.origins, GATEWAYS)
        self.assertEqual(ipfs.timeout, 5.0)
        self.assertEqual(ipfs.gateway_url(CURRENT_CID), f"{GATEWAYS[0]}/ipfs/{CURRENT_CID}")

        swarm = gateway_for(ContentReference("bzz", "ab" * 32), config)
        self.assertEqual(swarm.build_url(swarm.origins[0], "ab" * 32, "/x"), f"{swarm.origins[0]}/bzz/{'ab' * 32}/x")

        arweave = gateway_for(ContentReference("ar", "A" * 43), config)
        self.assertEqual(arweave.build_url("https://arweave.net", "A" * 43), f"https://arweave.net/{'A' * 43}")

    def test_limo_gateway(self) -> None:
        body = json.dumps({"schema": "x"}).encode("utf-8")
        opener = FakeOpener({"https://license.example.eth.limo/registry.json": body})
        gateway = gateway_for(ContentReference("ens", "license.example.eth"), make_config(), opener=opener)
        self.assertIsInstance(gateway, EnsGateway)
        self.assertEqual(gateway.fetch_from_dir("license.example.eth", "/registry.json"), {"schema": "x"})
        self.assertTrue(gateway.is_valid_hash("license.example.eth"))

    def test_paths_are_percent_encoded(self) -> None:
        ipfs = StorageGateway("ipfs", (GATEWAY,))
        self.assertEqual(
            ipfs.build_url(GATEWAY, CURRENT_CID, "/licenses/MIT License.txt"),
            f"{GATEWAY}/ipfs/{CURRENT_CID}/licenses/MIT%20License.txt",
        )
        self.assertEqual(
            ipfs.build_url(GATEWAY, CURRENT_CID, "/licenses/Licença.txt"),
            f"{GATEWAY}/ipfs/{CURRENT_CID}/licenses/Licen%C3%A7a.txt",
        )
        limo = EnsGateway("license.example.eth")
        self.assertEqual(
            limo.build_url(limo.origins[0], "license.example.eth", "/a b.md"),
            "https://license.example.eth.limo/a%20b.md",
        )


if __name__ == "__main__":
    unittest.main()
