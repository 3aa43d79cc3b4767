"""Account lifecycle — connecting, role assignment, shared folders and removal."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from drive_aggregator.accounts.credentials import CredentialError
from drive_aggregator.accounts.models import Account, AccountRole, AccountStatus
from drive_aggregator.accounts.store import AccountNotFoundError
from drive_aggregator.drive.client import DriveApiError

if TYPE_CHECKING:
    from drive_aggregator.accounts.store import AccountStore
    from drive_aggregator.drive.cache import FileMetadataCache
    from drive_aggregator.drive.client import DriveClient

logger = logging.getLogger(__name__)

SHARED_FOLDER_PREFIX = "shared_"
SHARED_FOLDER_ROLE = "writer"


def shared_folder_name(primary_email: str) -> str:
    """Name of the folder a backup account shares with the primary's owner."""
    return f"{SHARED_FOLDER_PREFIX}{primary_email}"


class AccountConnector:
    """Registers Google accounts whose OAuth exchange has already completed."""

    def __init__(
        self,
        account_store: AccountStore,
        drive_client: DriveClient,
        file_cache: FileMetadataCache,
    ) -> None:
        self._accounts = account_store
        self._drive = drive_client
        self._file_cache = file_cache

    def list_accounts(self) -> list[Account]:
        return self._accounts.list_accounts(AccountStatus.ACTIVE)

    def connect_account(
        self,
        account_id: str,
        email: str,
        name: str,
        access_token: str,
        refresh_token: str,
        avatar_url: str | None = None,
        expires_in: int = 3600,
    ) -> Account:
        """Store a freshly authorised account and prepare it for use.

        A new account becomes the primary only when no other non-revoked
        account holds that role, so an expired primary still counts.
        Reconnecting a known account keeps its role, shared folder and
        connection date. A backup account is given its shared folder as soon
        as a primary exists; a primary that connects shares every backup
        still missing one.

        Args:
            account_id: Google account identifier.
            email: Account email address.
            name: Display name.
            access_token: Access token from the OAuth exchange.
            refresh_token: Refresh token from the OAuth exchange.
            avatar_url: Profile picture URL.
            expires_in: Lifetime of ``access_token`` in seconds.

        Returns:
            The stored account, with quota and shared folder filled in.
        """
        try:
            previous: Account | None = self._accounts.get(account_id)
        except AccountNotFoundError:
            previous = None

        if previous is not None:
            role = previous.role
        else:
            others = [
                a
                for a in self._accounts.list_accounts()
                if a.account_id != account_id and a.status is not AccountStatus.REVOKED
            ]
            has_primary = any(a.role is AccountRole.PRIMARY for a in others)
            role = AccountRole.BACKUP if has_primary else AccountRole.PRIMARY

        account = Account(
            account_id=account_id,
            email=email,
            name=name,
            avatar_url=avatar_url,
            access_token=access_token,
            refresh_token=refresh_token or (previous.refresh_token if previous else ""),
            token_expires_at=datetime.now(tz=UTC) + timedelta(seconds=expires_in),
            role=role,
            shared_folder_id=previous.shared_folder_id if previous else None,
            status=AccountStatus.ACTIVE,
        )
        if previous is not None:
            account.connected_at = previous.connected_at
        self._accounts.save(account)
        logger.info(
            "[connect_account] account connected; account_id:%s;role:%s;reconnect:%s",
            account_id,
            role.value,
            previous is not None,
        )

        account = self.refresh_storage(account_id)
        if account.role is AccountRole.BACKUP and self._accounts.primary() is not None:
            account = self.ensure_shared_folder(account_id)
        elif account.role is AccountRole.PRIMARY:
            self._share_backups(only_missing=True)
        return account

    def refresh_storage(self, account_id: str) -> Account:
        """Update the stored quota numbers from the live account."""
        quota = self._drive.get_storage_quota(account_id)
        account = self._accounts.get(account_id)
        account.total_storage = quota.limit
        account.used_storage = quota.usage
        self._accounts.save(account)
        return account

    def ensure_shared_folder(self, backup_account_id: str) -> Account:
        """Give a backup account its folder shared with the primary's owner.

        An existing folder with the expected name that already grants the
        primary email writer access is reused; otherwise a new folder is
        created in the backup's root and shared.

        Raises:
            ValueError: If no primary account is connected, or the account is primary.
        """
        backup = self._accounts.get(backup_account_id)
        if backup.role is AccountRole.PRIMARY:
            raise ValueError("The primary account does not have a shared folder")
        primary = self._accounts.primary()
        if primary is None:
            raise ValueError("A primary account must be connected first")

        folder_name = shared_folder_name(primary.email)
        folder_id = self._find_shared_folder(backup_account_id, folder_name, primary.email)
        if folder_id is None:
            folder = self._drive.create_folder(backup_account_id, folder_name)
            self._drive.create_permission(
                backup_account_id, folder.id, SHARED_FOLDER_ROLE, "user", primary.email
            )
            folder_id = folder.id
            logger.info(
                "[ensure_shared_folder] created shared folder; account_id:%s;folder_id:%s",
                backup_account_id,
                folder_id,
            )

        backup.shared_folder_id = folder_id
        self._accounts.save(backup)
        return backup

    def _find_shared_folder(self, account_id: str, folder_name: str, email: str) -> str | None:
        for folder in self._drive.find_folders_by_name(account_id, folder_name):
            permissions = self._drive.list_permissions(account_id, folder.id)
            if any(
                p.email_address == email and p.role == SHARED_FOLDER_ROLE for p in permissions
            ):
                logger.info(
                    "[ensure_shared_folder] reusing shared folder; account_id:%s;folder_id:%s",
                    account_id,
                    folder.id,
                )
                return folder.id
        return None

    def _share_backups(self, only_missing: bool) -> None:
        """Point every active backup at a folder shared with the current primary."""
        for backup in self._accounts.backups():
            if only_missing and backup.shared_folder_id:
                continue
            try:
                self.ensure_shared_folder(backup.account_id)
            except (DriveApiError, CredentialError):
                logger.warning(
                    "[share_backups] could not share folder; account_id:%s",
                    backup.account_id,
                    exc_info=True,
                )

    def set_primary_account(self, account_id: str) -> Account:
        """Make ``account_id`` the only primary; every other account becomes a backup.

        Each backup, including the demoted primary, is then given a folder
        shared with the new primary's email. A backup that cannot be reached
        keeps its previous folder and is logged.

        Raises:
            AccountNotFoundError: If the account is not connected.
            ValueError: If the account is expired or revoked.
        """
        chosen = self._accounts.get(account_id)
        if chosen.status is not AccountStatus.ACTIVE:
            raise ValueError("Only an active account can become the primary")
        for account in self._accounts.list_accounts():
            if account.account_id == account_id:
                continue
            if account.role is AccountRole.PRIMARY:
                account.role = AccountRole.BACKUP
                self._accounts.save(account)
        chosen.role = AccountRole.PRIMARY
        chosen.shared_folder_id = None
        self._accounts.save(chosen)
        logger.info("[set_primary_account] primary changed; account_id:%s", account_id)
        self._share_backups(only_missing=False)
        return chosen

    def remove_account(self, account_id: str) -> None:
        """Forget an account and its cached file listing."""
        self._accounts.delete(account_id)
        self._file_cache.purge_account(account_id)
        logger.info("[remove_account] account removed; account_id:%s", account_id)
