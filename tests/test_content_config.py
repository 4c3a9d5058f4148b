import unittest

from license_registry.config import (
    DEFAULT_IPFS_GATEWAYS,
    DEFAULT_TIMEOUT_MS,
    RESOLUTION_LIMO,
    RegistryConfig,
    config_from_env,
)
from license_registry.content import (
    ContentReference,
    content_ref_from_dict,
    content_ref_to_dict,
    format_content_uri,
    parse_content_uri,
)

from registry_fixtures import CURRENT_CID


class ContentUriTests(unittest.TestCase):
    def test_format_parse_round_trip(self) -> None:
        for uri in (
            f"ipfs://{CURRENT_CID}",
            "ipns://k51qzi5uqu5dexample",
            "bzz://d1de9994b4d039f6548d191eb26786769f580809256b4685ef316805265ea162",
            "ar://AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8",
        ):
            with self.subTest(uri=uri):
                self.assertEqual(format_content_uri(parse_content_uri(uri)), uri)

    def test_unsupported_protocols_are_none(self) -> None:
        for uri in ("https://example.com", "ens://license.eth", "ipfs://", "ipfs:/abc", CURRENT_CID):
            with self.subTest(uri=uri):
                self.assertIsNone(parse_content_uri(uri))

    def test_reference_rejects_unknown_protocol(self) -> None:
        with self.assertRaises(ValueError):
            ContentReference("http", CURRENT_CID)
        with self.assertRaises(ValueError):
            ContentReference("ipfs", "")

    def test_dict_form(self) -> None:
        ref = ContentReference("ipfs", CURRENT_CID)
        self.assertEqual(content_ref_from_dict(content_ref_to_dict(ref)), ref)
        self.assertIsNone(content_ref_from_dict(None))
        with self.assertRaises(ValueError):
            content_ref_from_dict({"protocol": "ipfs"})


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = config_from_env({})
        self.assertEqual(config.gateway_origins, DEFAULT_IPFS_GATEWAYS)
        self.assertEqual(len(config.gateway_origins), 4)
        self.assertEqual(config.request_timeout_ms, DEFAULT_TIMEOUT_MS)
        self.assertEqual(config.timeout, 30.0)
        self.assertIsNone(config.ens_name)
        self.assertIsNone(config.root_override)

    def test_environment_overrides(self) -> None:
        config = config_from_env(
            {
                "LICENSE_REGISTRY_IPFS_GATEWAYS": "https://a.test/, https://b.test,,",
                "LICENSE_REGISTRY_TIMEOUT_MS": "1500",
                "LICENSE_REGISTRY_ENS_NAME": " license.example.eth ",
                "LICENSE_REGISTRY_CID": CURRENT_CID,
                "LICENSE_REGISTRY_RESOLUTION": "LIMO",
            }
        )
        self.assertEqual(config.gateway_origins, ("https://a.test", "https://b.test"))
        self.assertEqual(config.timeout, 1.5)
        self.assertEqual(config.ens_name, "license.example.eth")
        self.assertEqual(config.root_override, ContentReference("ipfs", CURRENT_CID))
        self.assertEqual(config.resolution, RESOLUTION_LIMO)

    def test_root_override_accepts_content_uri(self) -> None:
        config = config_from_env({"LICENSE_REGISTRY_CID": "ipns://k51qzi5uqu5dexample"})
        self.assertEqual(config.root_override.protocol, "ipns")

    def test_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            config_from_env({"LICENSE_REGISTRY_TIMEOUT_MS": "soon"})
        with self.assertRaises(ValueError):
            RegistryConfig(request_timeout_ms=0)
        with self.assertRaises(ValueError):
            RegistryConfig(resolution="dns")
        with self.assertRaises(ValueError):
            RegistryConfig(gateway_origins=())


if __name__ == "__main__":
    unittest.main()
