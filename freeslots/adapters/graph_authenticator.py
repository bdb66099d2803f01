"""
Microsoft Graph API authentication using MSAL (Device Code Flow).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import keyring
import msal
from keyring.errors import KeyringError, PasswordDeleteError
from rich.console import Console

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "freeslots"


class GraphAuthenticator:
    """
    Obtains delegated Graph tokens with the device code flow.

    Tokens are cached in the system keyring; when no keyring backend works
    the cache is kept in a file readable only by the current user.
    """

    # Required scopes for reading shared calendars' free/busy
    SCOPES = ["Calendars.Read.Shared", "Calendars.Read"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        cache_file: Path | None = None
    ):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.cache_file = cache_file or Path.home() / ".freeslots_token_cache.json"
        self._key_identifier = f"{client_id}:{tenant_id}"
        self._use_keyring = True
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return "keyring" if self._use_keyring else "file"

    def _load_cache(self) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()
        serialized = self._read_keyring() or self._read_cache_file()

        if serialized:
            try:
                cache.deserialize(serialized)
            except ValueError as exc:
                logger.warning("Could not deserialize token cache: %s", exc)

        return cache

    def _read_keyring(self) -> Optional[str]:
        if not self._use_keyring:
            return None
        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:
            self._fall_back_to_file(f"reading credentials failed: {exc}")
            return None

    def _read_cache_file(self) -> Optional[str]:
        if not self.cache_file.exists():
            return None
        try:
            return self.cache_file.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)
            return None

    def _save_cache(self) -> None:
        if not self.cache.has_state_changed:
            return

        serialized = self.cache.serialize()

        if self._use_keyring:
            try:
                keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
                return
            except KeyringError as exc:
                self._fall_back_to_file(f"writing credentials failed: {exc}")

        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(serialized, encoding="utf-8")
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def _fall_back_to_file(self, reason: str) -> None:
        logger.warning(
            "Secure credential storage unavailable (%s). Using plaintext cache at %s.",
            reason,
            self.cache_file,
        )
        self._use_keyring = False

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, from the cache when possible.

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(scopes=self.SCOPES, account=accounts[0])
                if result and "access_token" in result:
                    self._save_cache()
                    return result["access_token"]

        return self._authenticate_device_code_flow()

    def _authenticate_device_code_flow(self) -> str:
        flow = self.app.initiate_device_flow(scopes=self.SCOPES)

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print("\n[bold cyan]Microsoft sign-in required[/bold cyan]")
        console.print(f"Open [bold cyan]{flow['verification_uri']}[/bold cyan] "
                      f"and enter the code [bold yellow]{flow['user_code']}[/bold yellow]\n")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        self._save_cache()
        return result["access_token"]

    def clear_cache(self) -> None:
        """Clear the token cache (force re-authentication next time)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except PasswordDeleteError:
            logger.debug("No keyring entry to remove for %s", self._key_identifier)
        except KeyringError as exc:
            logger.warning("Could not remove credentials from keyring: %s", exc)
        self.cache = msal.SerializableTokenCache()
