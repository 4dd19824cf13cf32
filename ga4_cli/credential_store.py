"""On-disk storage for the cached OAuth token.

A single JSON record at a fixed per-user path. There is no locking: two
ga4-cli processes authenticating at the same time may overwrite each other.
"""
import json
import logging
import os
import tempfile
from typing import Optional

from .config import TOKEN_FILE
from .models import Token

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, path: str = TOKEN_FILE):
        self.path = path

    def load(self) -> Optional[Token]:
        """Return the cached token, or None if it is missing or unreadable."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable token file %s: %s", self.path, e)
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.debug("Ignoring token file %s without an access token", self.path)
            return None
        try:
            return Token.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring malformed token file %s: %s", self.path, e)
            return None

    def save(self, token: Token) -> bool:
        """Overwrite the token file. Returns False if it could not be written."""
        parent = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(parent, exist_ok=True)
            # NamedTemporaryFile creates the file with mode 0600
            with tempfile.NamedTemporaryFile(
                mode="w", dir=parent, prefix=".token-", suffix=".tmp", delete=False
            ) as f:
                tmp_path = f.name
                json.dump(token.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Could not save token to %s: %s", self.path, e)
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            return False
        logger.debug("Token saved to %s", self.path)
        return True

    def delete(self) -> bool:
        """Remove the token file. A missing file counts as success."""
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error("Could not delete token file %s: %s", self.path, e)
            return False
        return True
