"""
Secrets for the invoicing service, read from HashiCorp Vault (KV v2).

AppRole credentials come from the environment. Every lookup is confined to
the gst/ mount path, and a missing or unreadable secret stops startup
rather than degrading.
"""

import logging
import os
from typing import Dict

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "gst"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


class VaultClient:
    """AppRole-authenticated KV v2 reader."""

    def __init__(self, vault_addr: str | None = None, vault_namespace: str | None = None):
        """Raises ValueError on missing configuration, PermissionError on failed login."""
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        self.client = hvac.Client(url=self.vault_addr, namespace=self.vault_namespace)

        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error("AppRole authentication failed: %s", e)
            raise PermissionError(f"AppRole authentication failed: {e}") from e
        self.client.token = login["auth"]["client_token"]

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info("Vault client initialized: %s", self.vault_addr)

    def get_secret(self, path: str, field: str) -> str:
        """
        One field of the secret at gst/<path>.

        Raises:
            PermissionError: path missing or access denied
            KeyError: field absent from the secret
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error("Secret path not found: %s", full_path)
            raise PermissionError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error("Access denied to secret %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}': {e}") from e

        secret = response["data"]["data"]
        if field not in secret:
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(secret)}"
            )
        return secret[field]


def _vault() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def get_database_url() -> str:
    """
    PostgreSQL DSN.

    DATABASE_URL in the environment wins (local development, CI); otherwise
    gst/database#url is read from Vault once per process.
    """
    override = os.getenv("DATABASE_URL")
    if override:
        return override

    if "database/url" not in _secret_cache:
        _secret_cache["database/url"] = _vault().get_secret("database", "url")
    return _secret_cache["database/url"]
