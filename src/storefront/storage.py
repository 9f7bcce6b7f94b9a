"""Named-blob persistence for client-side state (cart, auth session)."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .config import get_settings
from .models import AuthSession

logger = logging.getLogger(__name__)

CLIENT_DIR = "client"
CART_BLOB = "cart-storage"
AUTH_BLOB = "auth-storage"
CHECKOUT_BLOB = "checkout-storage"


class BlobStorage:
    """Stores each named blob as one JSON document, rewritten whole on save."""

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize BlobStorage.

        Args:
            data_dir: Override base data directory (for testing).
        """
        base = data_dir or get_settings().data_dir
        self.storage_dir = Path(base) / CLIENT_DIR

    def path_for(self, name: str) -> Path:
        return self.storage_dir / f"{name}.json"

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def load(self, name: str) -> dict[str, Any] | None:
        """
        Load a blob.

        Returns None when the blob is missing or unreadable; a corrupt blob
        is logged and treated as absent.
        """
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable blob %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed blob %s", path)
            return None
        return data

    def save(self, name: str, data: dict[str, Any]) -> None:
        """
        Save a blob atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=self.storage_dir, prefix=f".{name}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(temp_path, self.path_for(name))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        if path.exists():
            path.unlink()


class SessionStore:
    """Persists the authenticated session under the auth blob."""

    def __init__(self, storage: BlobStorage):
        self.storage = storage
        self._session = self._restore()

    def _restore(self) -> AuthSession:
        data = self.storage.load(AUTH_BLOB)
        if data is None:
            return AuthSession()
        try:
            return AuthSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding invalid auth session: %s", exc)
            return AuthSession()

    @property
    def session(self) -> AuthSession:
        return self._session

    def login(self, session: AuthSession) -> None:
        self._session = session
        self.storage.save(AUTH_BLOB, session.to_dict())

    def logout(self) -> None:
        self._session = AuthSession()
        self.storage.save(AUTH_BLOB, self._session.to_dict())
