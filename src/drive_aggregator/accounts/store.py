"""Account records persisted in Azure Blob Storage."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import TYPE_CHECKING

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from drive_aggregator.accounts.models import Account, AccountRole, AccountStatus

if TYPE_CHECKING:
    from drive_aggregator.config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_STATE_CONTAINER = "drive-aggregator-state"
DEFAULT_ACCOUNTS_BLOB_PREFIX = "accounts/"


class AccountNotFoundError(KeyError):
    """Raised when no record exists for the requested account."""


class AccountStore:
    """Key-value store of connected accounts for one aggregator user.

    Each account is a JSON blob at ``<prefix><user_id>/<account_id>.json``.
    Reads may be stale with respect to concurrent writers; there is no
    optimistic-concurrency check.
    """

    def __init__(
        self,
        storage_connection_string: str,
        user_id: str,
        container: str = DEFAULT_STATE_CONTAINER,
        blob_prefix: str = DEFAULT_ACCOUNTS_BLOB_PREFIX,
    ) -> None:
        """Initialise the account store.

        Args:
            storage_connection_string: Azure Storage connection string.
            user_id: Aggregator user whose accounts this store holds.
            container: Blob container name.
            blob_prefix: Prefix for account blob paths (e.g. "accounts/").
        """
        self._blob_service = BlobServiceClient.from_connection_string(storage_connection_string)
        self._user_id = user_id
        self._container = container
        self._blob_prefix = blob_prefix

    def _user_prefix(self) -> str:
        return f"{self._blob_prefix}{self._user_id}/"

    def _blob_path(self, account_id: str) -> str:
        return f"{self._user_prefix()}{account_id}.json"

    def get(self, account_id: str) -> Account:
        """Load one account record.

        Raises:
            AccountNotFoundError: If the account has never been stored.
        """
        container_client = self._blob_service.get_container_client(self._container)
        blob_client = container_client.get_blob_client(self._blob_path(account_id))
        try:
            data = blob_client.download_blob().readall()
        except ResourceNotFoundError as exc:
            raise AccountNotFoundError(account_id) from exc
        return Account.from_dict(json.loads(data))

    def list_accounts(self, status: AccountStatus | None = None) -> list[Account]:
        """Return the user's accounts, oldest connection first.

        Args:
            status: Only return accounts in this status; None returns all.
        """
        container_client = self._blob_service.get_container_client(self._container)
        accounts: list[Account] = []
        try:
            for blob in container_client.list_blobs(name_starts_with=self._user_prefix()):
                data = container_client.get_blob_client(blob.name).download_blob().readall()
                accounts.append(Account.from_dict(json.loads(data)))
        except ResourceNotFoundError:
            logger.info("[list_accounts] state container not found; no accounts yet")
            return []
        if status is not None:
            accounts = [a for a in accounts if a.status is status]
        return sorted(accounts, key=lambda a: a.connected_at)

    def save(self, account: Account) -> None:
        """Create or overwrite an account record, creating the container if needed."""
        container_client = self._blob_service.get_container_client(self._container)
        with contextlib.suppress(Exception):
            container_client.create_container()
        blob_client = container_client.get_blob_client(self._blob_path(account.account_id))
        blob_client.upload_blob(json.dumps(account.to_dict()).encode("utf-8"), overwrite=True)
        logger.info(
            "[save] stored account; account_id:%s;role:%s;status:%s",
            account.account_id,
            account.role.value,
            account.status.value,
        )

    def delete(self, account_id: str) -> None:
        """Remove an account record. Missing records are ignored."""
        container_client = self._blob_service.get_container_client(self._container)
        blob_client = container_client.get_blob_client(self._blob_path(account_id))
        try:
            blob_client.delete_blob()
        except ResourceNotFoundError:
            logger.info("[delete] account already absent; account_id:%s", account_id)
            return
        logger.info("[delete] removed account; account_id:%s", account_id)

    def primary(self) -> Account | None:
        """Return the active primary account, if one is connected."""
        for account in self.list_accounts(AccountStatus.ACTIVE):
            if account.role is AccountRole.PRIMARY:
                return account
        return None

    def backups(self) -> list[Account]:
        """Return the active backup accounts."""
        return [
            a for a in self.list_accounts(AccountStatus.ACTIVE) if a.role is AccountRole.BACKUP
        ]


def account_store_from_config(config: AppConfig) -> AccountStore:
    """Construct an AccountStore from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured AccountStore instance.
    """
    return AccountStore(
        storage_connection_string=config.storage_connection_string,
        user_id=config.user_id,
        container=config.state_container,
        blob_prefix=config.accounts_blob_prefix,
    )
