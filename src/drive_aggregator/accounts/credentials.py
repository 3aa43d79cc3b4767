"""Per-account bearer tokens with transparent OAuth refresh via google-auth."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from drive_aggregator.accounts.models import Account, AccountStatus
from drive_aggregator.accounts.store import AccountNotFoundError, AccountStore
from drive_aggregator.drive.client import DriveApiError

if TYPE_CHECKING:
    from drive_aggregator.config import AppConfig

logger = logging.getLogger(__name__)

DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/drive",
]


class CredentialError(Exception):
    """Raised when no valid bearer token can be produced for an account.

    The caller should ask the user to reconnect the account.
    """

    def __init__(self, account_id: str, reason: str) -> None:
        super().__init__(f"Account {account_id} must be reconnected: {reason}")
        self.account_id = account_id
        self.reason = reason


class CredentialProvider:
    """Hands out currently valid access tokens for stored accounts."""

    def __init__(
        self,
        account_store: AccountStore,
        client_id: str,
        client_secret: str,
        token_uri: str = "https://oauth2.googleapis.com/token",
    ) -> None:
        """Initialise the credential provider.

        Args:
            account_store: Store holding each account's tokens and expiry.
            client_id: OAuth client ID the refresh tokens were issued to.
            client_secret: OAuth client secret.
            token_uri: OAuth token endpoint used for refresh.
        """
        self._accounts = account_store
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_uri = token_uri

    def _credentials_for(self, account: Account) -> Credentials:
        expiry = None
        if account.token_expires_at is not None:
            # google-auth compares expiry as naive UTC.
            expiry = account.token_expires_at.astimezone(UTC).replace(tzinfo=None)
        return Credentials(
            token=account.access_token or None,
            refresh_token=account.refresh_token or None,
            token_uri=self._token_uri,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=DRIVE_SCOPES,
            expiry=expiry,
        )

    def ensure_valid_token(self, account_id: str) -> str:
        """Return a valid access token, refreshing and persisting it if expired.

        Args:
            account_id: Connected account to authenticate as.

        Returns:
            Bearer token string.

        Raises:
            CredentialError: If the account is unknown or revoked, or the refresh
                is rejected. A rejected refresh flags the account as expired.
            DriveApiError: If the token endpoint cannot be reached; the account
                keeps its status.
        """
        try:
            account = self._accounts.get(account_id)
        except AccountNotFoundError as exc:
            raise CredentialError(account_id, "account is not connected") from exc

        if account.status is AccountStatus.REVOKED:
            raise CredentialError(account_id, "account access was revoked")

        creds = self._credentials_for(account)
        if creds.valid:
            return str(creds.token)

        if not account.refresh_token:
            self._flag(account, AccountStatus.EXPIRED)
            raise CredentialError(account_id, "no refresh token stored")

        try:
            creds.refresh(Request())
        except RefreshError as exc:
            logger.error(
                "[ensure_valid_token] token refresh rejected; account_id:%s;error:%s",
                account_id,
                exc,
            )
            self._flag(account, AccountStatus.EXPIRED)
            raise CredentialError(account_id, "token refresh failed") from exc
        except TransportError as exc:
            logger.warning(
                "[ensure_valid_token] token endpoint unreachable; account_id:%s;error:%s",
                account_id,
                exc,
            )
            raise DriveApiError(503, "Google token endpoint unreachable, try again") from exc

        account.access_token = str(creds.token)
        if creds.expiry is not None:
            account.token_expires_at = creds.expiry.replace(tzinfo=UTC)
        account.status = AccountStatus.ACTIVE
        self._accounts.save(account)
        logger.info(
            "[ensure_valid_token] refreshed access token; account_id:%s;expires_at:%s",
            account_id,
            account.token_expires_at,
        )
        return account.access_token

    def _flag(self, account: Account, status: AccountStatus) -> None:
        account.status = status
        self._accounts.save(account)


def credential_provider_from_config(
    account_store: AccountStore, config: AppConfig
) -> CredentialProvider:
    """Construct a CredentialProvider from application configuration.

    Args:
        account_store: The session's account store.
        config: Application configuration instance.

    Returns:
        Configured CredentialProvider instance.
    """
    return CredentialProvider(
        account_store=account_store,
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        token_uri=config.token_uri,
    )
