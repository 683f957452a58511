"""Secure storage of the conjure.so personal access token."""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

__all__ = ["KeychainManager"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "aw-conjure-integration"
ACCOUNT_NAME = "conjure_pat"


class KeychainManager:
    """Keeps the PAT in the system keychain so it need not sit in settings.json."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def store_pat(self, pat: str) -> bool:
        """Store the PAT.

        Returns:
            True if stored successfully
        """
        try:
            keyring.set_password(self.service_name, ACCOUNT_NAME, pat)
            logger.info("Personal access token stored in keychain")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store personal access token: {e}")
            return False

    def load_pat(self) -> Optional[str]:
        """Load the PAT, or None if absent or the keychain is unavailable."""
        try:
            return keyring.get_password(self.service_name, ACCOUNT_NAME)
        except KeyringError as e:
            logger.warning(f"Failed to load personal access token: {e}")
            return None

    def delete_pat(self) -> bool:
        """Delete the stored PAT.

        Returns:
            True if deleted (or didn't exist)
        """
        try:
            keyring.delete_password(self.service_name, ACCOUNT_NAME)
            logger.info("Personal access token deleted")
            return True
        except PasswordDeleteError:
            # Password didn't exist
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete personal access token: {e}")
            return False
