import json
import tempfile
import unittest
from pathlib import Path

from uss_storage.profiles import ConnectionProfile, ProfileStorage, parse_credential


class FakeKeychain:
    def __init__(self):
        self.secrets = {}
        self.set_calls = []
        self.delete_calls = []

    def get_secret(self, profile_name: str) -> str:
        return self.secrets.get(profile_name, "")

    def set_secret(self, profile_name: str, secret: str) -> None:
        self.set_calls.append((profile_name, secret))
        self.secrets[profile_name] = secret

    def delete_secret(self, profile_name: str) -> None:
        self.delete_calls.append(profile_name)
        self.secrets.pop(profile_name, None)


class ProfileStorageTests(unittest.TestCase):
    def test_load_migrates_plaintext_passwords(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "connections.json"
            payload = [
                {
                    "name": "alpha",
                    "bucket": "bucket-one",
                    "operator": "op",
                    "password": "secret",
                    "work_dir": "work",
                }
            ]
            path.write_text(json.dumps(payload), encoding="utf-8")
            fake_keychain = FakeKeychain()
            storage = ProfileStorage(path, keychain=fake_keychain)

            profiles = storage.load()

            self.assertEqual("secret", profiles[0].password)
            self.assertEqual("/work/", profiles[0].work_dir)
            self.assertEqual([("alpha", "secret")], fake_keychain.set_calls)
            sanitized = json.loads(path.read_text(encoding="utf-8"))
            self.assertNotIn("password", sanitized[0])
            self.assertEqual("bucket-one", sanitized[0]["bucket"])

    def test_load_uses_keychain_when_password_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "connections.json"
            payload = [{"name": "alpha", "bucket": "bucket-one", "operator": "op"}]
            path.write_text(json.dumps(payload), encoding="utf-8")
            fake_keychain = FakeKeychain()
            fake_keychain.secrets["alpha"] = "stored-secret"
            storage = ProfileStorage(path, keychain=fake_keychain)

            profiles = storage.load()

            self.assertEqual("stored-secret", profiles[0].password)
            self.assertEqual("/", profiles[0].work_dir)
            self.assertEqual("hmac:op:stored-secret", profiles[0].credential)

    def test_load_skips_incomplete_entries(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "connections.json"
            payload = [{"name": "alpha"}, "garbage", {"name": "beta", "bucket": "b", "operator": "op"}]
            path.write_text(json.dumps(payload), encoding="utf-8")
            storage = ProfileStorage(path, keychain=FakeKeychain())

            self.assertEqual(["beta"], [profile.name for profile in storage.load()])

    def test_save_deletes_removed_keychain_entries(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "connections.json"
            payload = [
                {"name": "alpha", "bucket": "one", "operator": "a"},
                {"name": "beta", "bucket": "two", "operator": "b"},
            ]
            path.write_text(json.dumps(payload), encoding="utf-8")
            fake_keychain = FakeKeychain()
            storage = ProfileStorage(path, keychain=fake_keychain)

            storage.save([ConnectionProfile(name="alpha", bucket="one", operator="a", password="pw")])

            self.assertEqual(["beta"], fake_keychain.delete_calls)
            self.assertEqual("pw", fake_keychain.secrets["alpha"])
            saved = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual([{"name": "alpha", "bucket": "one", "operator": "a", "work_dir": "/"}], saved)

    def test_get_returns_named_profile(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "connections.json"
            storage = ProfileStorage(path, keychain=FakeKeychain())
            storage.save([ConnectionProfile(name="alpha", bucket="one", operator="a", password="pw")])

            self.assertEqual("one", storage.get("alpha").bucket)
            with self.assertRaises(ValueError):
                storage.get("missing")


class ParseCredentialTests(unittest.TestCase):
    def test_parses_hmac(self):
        self.assertEqual(("hmac", ["op", "pw:with:colons"]), parse_credential("hmac:op:pw:with:colons"))

    def test_keeps_other_protocols(self):
        self.assertEqual(("token", ["abc"]), parse_credential("token:abc"))

    def test_rejects_malformed(self):
        for value in ("", "hmac", "hmac:op", "hmac::pw", ":x"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    parse_credential(value)


if __name__ == "__main__":
    unittest.main()
