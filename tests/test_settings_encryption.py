import os
import sys
import unittest
import keyring
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = DummyKeyring()
        keyring.set_keyring(self.backend)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'secret', 'language': 'de'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            self.assertNotIn('secret', f.read())
        self.assertEqual(self.backend.store[('derplan', 'api_token')], 'secret')
        data = cfg.load()
        self.assertEqual(data['api_token'], 'secret')
        self.assertEqual(data['language'], 'de')

    def test_missing_secret_is_dropped(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'k1'})
        self.backend.store.clear()
        self.assertNotIn('api_token', cfg.load())

    def test_empty_secret_clears_keyring(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'old'})
        cfg.save({'api_token': ''})
        self.assertEqual(self.backend.store, {})
        self.assertEqual(cfg.load()['api_token'], '')

    def test_repository_keeps_token_in_keyring(self) -> None:
        db_path = 'enc_settings.db'
        try:
            repo = SettingsRepository(db_path, self.path)
            repo.set_text('api_token', 'tok-42')
            with open(self.path, encoding='utf-8') as f:
                self.assertNotIn('tok-42', f.read())
            self.assertEqual(self.backend.store[('derplan', 'api_token')], 'tok-42')
            self.assertEqual(repo.get_text('api_token', ''), 'tok-42')
        finally:
            if os.path.exists(db_path):
                os.remove(db_path)

    def test_plain_mode_keeps_values(self) -> None:
        os.environ.pop('ENCRYPT_SETTINGS', None)
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'visible'})
        self.assertEqual(cfg.load()['api_token'], 'visible')
        self.assertEqual(self.backend.store, {})

if __name__ == '__main__':
    unittest.main()
