"""
CredentialStoreのユニットテスト
"""

import json
import os
import stat
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from story.auth.models import ClientIdentity, Credentials
from story.auth.storage import CREDENTIALS_KEY, KeyringCredentialStore, MemoryCredentialStore
from story.errors import PersistException

CREDENTIALS = Credentials(ClientIdentity("app", "secret"), access_token="token-1234")


class TestMemoryCredentialStore(unittest.TestCase):
    """MemoryCredentialStoreのテスト"""

    def test_save_and_load(self):
        store = MemoryCredentialStore()
        self.assertIsNone(store.load())
        store.save(CREDENTIALS)
        self.assertEqual(store.load(), CREDENTIALS)
        self.assertEqual(store.save_count, 1)

    def test_clear(self):
        store = MemoryCredentialStore(CREDENTIALS)
        store.clear()
        self.assertIsNone(store.load())


class TestKeyringCredentialStore(unittest.TestCase):
    """KeyringCredentialStoreのテスト"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.fallback = Path(self.temp_dir.name) / "story" / "credentials.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_uses_keyring(self):
        saved = {}

        def set_password(service, key, value):
            saved[(service, key)] = value

        with patch("story.auth.storage.keyring.set_password", side_effect=set_password), patch(
            "story.auth.storage.keyring.get_password",
            side_effect=lambda service, key: saved.get((service, key)),
        ):
            store = KeyringCredentialStore("story-test", self.fallback)
            store.save(CREDENTIALS)
            loaded = store.load()

        self.assertEqual(loaded, CREDENTIALS)
        self.assertIn(("story-test", CREDENTIALS_KEY), saved)
        self.assertFalse(self.fallback.exists())

    def test_falls_back_to_file(self):
        """keyringが使えない場合はファイルに保存されること"""
        with patch(
            "story.auth.storage.keyring.set_password", side_effect=KeyringError("no backend")
        ), patch("story.auth.storage.keyring.get_password", side_effect=KeyringError("no backend")):
            store = KeyringCredentialStore("story-test", self.fallback)
            with self.assertWarns(RuntimeWarning):
                store.save(CREDENTIALS)
            loaded = store.load()

        self.assertEqual(loaded, CREDENTIALS)
        payload = json.loads(self.fallback.read_text(encoding="utf-8"))
        self.assertEqual(payload["access_token"], "token-1234")
        mode = stat.S_IMODE(os.stat(self.fallback).st_mode)
        self.assertEqual(mode, 0o600)

    def test_load_missing(self):
        with patch("story.auth.storage.keyring.get_password", return_value=None):
            self.assertIsNone(KeyringCredentialStore("story-test", self.fallback).load())

    def test_corrupt_payload(self):
        with patch("story.auth.storage.keyring.get_password", return_value="{broken"):
            store = KeyringCredentialStore("story-test", self.fallback)
            with self.assertWarns(RuntimeWarning):
                self.assertIsNone(store.load())

    def test_payload_without_client_id(self):
        with patch("story.auth.storage.keyring.get_password", return_value='{"access_token": "x"}'):
            self.assertIsNone(KeyringCredentialStore("story-test", self.fallback).load())

    def test_clear_missing_entry(self):
        with patch(
            "story.auth.storage.keyring.delete_password", side_effect=PasswordDeleteError("missing")
        ):
            KeyringCredentialStore("story-test", self.fallback).clear()

    def test_clear_fallback_file(self):
        self.fallback.parent.mkdir(parents=True)
        self.fallback.write_text("{}", encoding="utf-8")
        with patch("story.auth.storage.keyring.delete_password", side_effect=KeyringError("no backend")):
            store = KeyringCredentialStore("story-test", self.fallback)
            with self.assertWarns(RuntimeWarning):
                store.clear()
        self.assertFalse(self.fallback.exists())

    def test_fallback_write_failure(self):
        blocker = Path(self.temp_dir.name) / "blocker"
        blocker.write_text("", encoding="utf-8")
        with patch("story.auth.storage.keyring.set_password", side_effect=KeyringError("no backend")):
            store = KeyringCredentialStore("story-test", blocker / "credentials.json")
            with self.assertWarns(RuntimeWarning), self.assertRaises(PersistException):
                store.save(CREDENTIALS)


if __name__ == "__main__":
    unittest.main()
