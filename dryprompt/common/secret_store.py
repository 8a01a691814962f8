"""
Secret Store

Holds the single API credential used by the analysis pipeline. The
controller and pipeline only depend on the four operations of SecretStore;
FileSecretStore keeps the credential in a 0600 JSON file next to the config.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from .config import CREDENTIALS_PATH

logger = logging.getLogger("dryprompt.common.secret_store")

API_KEY_ACCOUNT = "openai_api_key"
API_KEY_ENV = "OPENAI_API_KEY"


class SecretStoreError(Exception):
    """Error reading or writing the credential file."""
    pass


class SecretStore(Protocol):
    def has_credential(self) -> bool: ...

    def get_credential(self) -> Optional[str]: ...

    def set_credential(self, credential: str) -> None: ...

    def delete_credential(self) -> None: ...


class FileSecretStore:
    """
    File-backed credential storage.

    The OPENAI_API_KEY environment variable, when set, takes precedence over
    the stored value and is never written to disk.
    """

    def __init__(self, path: Optional[Path] = None, account: str = API_KEY_ACCOUNT, env_var: Optional[str] = API_KEY_ENV):
        self._path = Path(path) if path else CREDENTIALS_PATH
        self._account = account
        self._env_var = env_var

    def _load(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to read credential file %s: %s", self._path, e)
            return {}

    def _save(self, data: dict) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w") as f:
                json.dump(data, f, indent=2)
            self._path.chmod(0o600)
        except OSError as e:
            raise SecretStoreError(f"Failed to save credential: {e}") from e

    def has_credential(self) -> bool:
        credential = self.get_credential()
        return bool(credential)

    def get_credential(self) -> Optional[str]:
        if self._env_var:
            env_value = os.getenv(self._env_var)
            if env_value:
                return env_value
        value = self._load().get(self._account)
        return value or None

    def set_credential(self, credential: str) -> None:
        if not credential or not isinstance(credential, str) or not credential.strip():
            raise ValueError("API key must be a non-empty string")
        data = self._load()
        data[self._account] = credential.strip()
        self._save(data)
        logger.info("API key saved to %s", self._path)

    def delete_credential(self) -> None:
        data = self._load()
        if self._account not in data:
            logger.info("No API key found to delete")
            return
        del data[self._account]
        self._save(data)
        logger.info("API key deleted")
