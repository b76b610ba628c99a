import os
import logging
import yaml
import keyring
from keyring.errors import PasswordDeleteError

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "derplan"

logger = logging.getLogger(__name__)


class YamlConfig:
    """Settings file in YAML.

    With ``ENCRYPT_SETTINGS=1`` the values of ``SENSITIVE_KEYS`` live in the
    OS keyring and the file only marks them with ``True``. An empty secret
    removes the keyring entry and is written to the file as an empty string.
    """

    SENSITIVE_KEYS = frozenset({"api_token"})

    def __init__(self, path: str = "settings.yaml", service: str = KEYRING_SERVICE) -> None:
        self.path = path
        self.service = service
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def load(self) -> dict:
        data = self._read()
        if not self.encrypt:
            return data
        for key in self.SENSITIVE_KEYS & data.keys():
            if data[key] is not True:
                continue
            secret = keyring.get_password(self.service, key)
            if secret is None:
                logger.warning("secret %s missing from keyring %s", key, self.service)
                del data[key]
            else:
                data[key] = secret
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & out.keys():
                value = "" if out[key] is None else str(out[key])
                if value:
                    keyring.set_password(self.service, key, value)
                    out[key] = True
                else:
                    self._forget(key)
                    out[key] = ""
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f, allow_unicode=True)

    def _forget(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            logger.debug("no keyring entry for %s", key)
