"""
Credential Manager Module
Loads API credentials from the environment, optionally seeded from a .env file.
"""

import os
from pathlib import Path
from typing import Dict, Optional

import structlog
from dotenv import load_dotenv

from unimatch.utils.errors import ConfigurationError

logger = structlog.get_logger(__name__)

OPENAI_API_KEY = "OPENAI_API_KEY"
GOOGLE_SEARCH_API_KEY = "GOOGLE_SEARCH_API_KEY"
GOOGLE_SEARCH_ENGINE_ID = "GOOGLE_SEARCH_ENGINE_ID"
BRAVE_SEARCH_API_KEY = "BRAVE_SEARCH_API_KEY"

KNOWN_CREDENTIALS = (
    OPENAI_API_KEY,
    GOOGLE_SEARCH_API_KEY,
    GOOGLE_SEARCH_ENGINE_ID,
    BRAVE_SEARCH_API_KEY,
)


class CredentialManager:
    """Read-only access to credentials in the process environment."""

    def __init__(self, env_file: Optional[Path] = Path(".env")):
        """
        Initialize credential manager.

        Args:
            env_file: Optional .env file loaded without overriding variables
                already present in the environment
        """
        self.env_file = env_file
        self._load_credentials()

    def _load_credentials(self) -> None:
        """Load existing credentials from the .env file."""
        if self.env_file is not None and self.env_file.exists():
            load_dotenv(self.env_file, override=False)
            logger.info("credentials_loaded_from_env", env_file=str(self.env_file))
        else:
            logger.debug("no_env_file_found", env_file=str(self.env_file))

    def get_credential(self, key: str) -> Optional[str]:
        """
        Get a credential from the environment.

        Args:
            key: Environment variable name (e.g., "OPENAI_API_KEY")

        Returns:
            Credential value, or None when unset or blank
        """
        value = os.getenv(key)
        if value and value.strip():
            return value.strip()
        return None

    def require(self, key: str) -> str:
        """
        Get a credential that must be present.

        Raises:
            ConfigurationError: If the credential is not set
        """
        value = self.get_credential(key)
        if value is None:
            logger.error("required_credential_missing", key=key)
            raise ConfigurationError(f"{key} is not configured")
        return value

    def has_credentials(self, *keys: str) -> bool:
        """True when every named credential is set."""
        return all(self.get_credential(key) is not None for key in keys)

    def summary(self) -> Dict[str, str]:
        """Masked view of the known credentials for display."""
        return {
            key: self.mask_credential(value) if (value := self.get_credential(key)) else "not set"
            for key in KNOWN_CREDENTIALS
        }

    @staticmethod
    def mask_credential(value: str, show_chars: int = 3) -> str:
        """
        Mask credential for display in logs.

        Args:
            value: Credential value to mask
            show_chars: Number of characters to show at start

        Returns:
            Masked credential (e.g., "abc***")
        """
        if not value or len(value) <= show_chars:
            return "***"
        return f"{value[:show_chars]}{'*' * (len(value) - show_chars)}"
