"""Drive explorer — listing, folder management, uploads and storage overview."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from drive_aggregator.accounts.credentials import CredentialError
from drive_aggregator.drive.client import DriveApiError
from drive_aggregator.drive.models import NamingConflictError, has_name_conflict

if TYPE_CHECKING:
    from drive_aggregator.accounts.store import AccountStore
    from drive_aggregator.drive.cache import FileMetadataCache
    from drive_aggregator.drive.client import DriveClient
    from drive_aggregator.drive.models import DriveFile, DriveFolder, DriveNode
    from drive_aggregator.orchestration.allocator import StorageAllocator

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_UNAVAILABLE = "unavailable"


@dataclass
class AccountUsage:
    account_id: str
    email: str
    role: str
    total_bytes: int | None
    used_bytes: int | None
    status: str

    @property
    def free_bytes(self) -> int | None:
        if self.total_bytes is None or self.used_bytes is None:
            return None
        return self.total_bytes - self.used_bytes


@dataclass
class StorageSummary:
    """Aggregate storage across every reachable account."""

    total_bytes: int = 0
    used_bytes: int = 0
    accounts: list[AccountUsage] = field(default_factory=list)

    @property
    def free_bytes(self) -> int:
        return self.total_bytes - self.used_bytes

    @property
    def percent_used(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return round(self.used_bytes / self.total_bytes * 100, 2)


class DriveExplorer:
    """Operations behind the file browser of each connected account."""

    def __init__(
        self,
        drive_client: DriveClient,
        file_cache: FileMetadataCache,
        account_store: AccountStore,
        allocator: StorageAllocator,
        largest_files_limit: int = 100,
    ) -> None:
        """Initialise the explorer.

        Args:
            drive_client: Client for the Drive REST API.
            file_cache: Fallback listing source when the live call fails.
            account_store: Connected account records.
            allocator: Runs auto-relieve before uploads to the primary.
            largest_files_limit: Default length of the largest-files listing.
        """
        self._drive = drive_client
        self._file_cache = file_cache
        self._accounts = account_store
        self._allocator = allocator
        self._largest_files_limit = largest_files_limit

    def get_files(self, account_id: str) -> list[DriveNode]:
        """List an account's nodes, falling back to the cached listing on API errors."""
        try:
            nodes = self._drive.list_files(account_id)
        except DriveApiError as exc:
            logger.warning(
                "[get_files] live listing failed, serving cache; account_id:%s;status:%d",
                account_id,
                exc.status_code,
            )
            return self._file_cache.get_cached_files(account_id)
        self._file_cache.sync_files(account_id, nodes)
        return nodes

    def get_largest_files(self, account_id: str, limit: int | None = None) -> list[DriveFile]:
        return self._drive.list_largest_files(account_id, limit or self._largest_files_limit)

    def create_folder(
        self, account_id: str, name: str, parent_id: str | None = None
    ) -> DriveFolder:
        """Create a folder, refusing names already used by a sibling (any case).

        Raises:
            ValueError: If the name is blank.
            NamingConflictError: If a sibling already uses the name.
        """
        name = name.strip()
        if not name:
            raise ValueError("Folder name must not be empty")
        parent = parent_id or self._drive.get_root_id(account_id)
        siblings = self._drive.list_children(account_id, parent)
        if has_name_conflict([s.name for s in siblings], name):
            raise NamingConflictError(name, parent)
        return self._drive.create_folder(account_id, name, parent)

    def delete_node(self, account_id: str, node_id: str) -> None:
        self._drive.delete(account_id, node_id)
        self._file_cache.mark_deleted(account_id, node_id)

    def upload_file(
        self,
        account_id: str,
        name: str,
        mime_type: str,
        content: bytes,
        parent_id: str | None = None,
    ) -> DriveFile:
        """Upload a file, first relieving the primary account if it is low on space.

        A failing relieve run is logged and never prevents the upload.
        """
        account = self._accounts.get(account_id)
        if account.is_primary:
            try:
                self._allocator.check_and_auto_relieve(account_id)
            except Exception:
                logger.warning(
                    "[upload_file] auto-relieve failed; continuing with upload; account_id:%s",
                    account_id,
                    exc_info=True,
                )
        return self._drive.upload(account_id, name, mime_type, parent_id, content)

    def storage_summary(self) -> StorageSummary:
        """Refresh every active account's quota and aggregate the totals.

        Accounts whose quota cannot be fetched are reported as unavailable and
        left out of the totals.
        """
        summary = StorageSummary()
        for account in self._accounts.list_accounts():
            if not account.is_active:
                continue
            try:
                quota = self._drive.get_storage_quota(account.account_id)
            except (DriveApiError, CredentialError) as exc:
                logger.warning(
                    "[storage_summary] quota unavailable; account_id:%s;error:%s",
                    account.account_id,
                    exc,
                )
                summary.accounts.append(
                    AccountUsage(
                        account_id=account.account_id,
                        email=account.email,
                        role=account.role.value,
                        total_bytes=None,
                        used_bytes=None,
                        status=STATUS_UNAVAILABLE,
                    )
                )
                continue

            # Reload: the quota call may have stored a refreshed token.
            stored = self._accounts.get(account.account_id)
            stored.total_storage = quota.limit
            stored.used_storage = quota.usage
            self._accounts.save(stored)
            summary.total_bytes += quota.limit
            summary.used_bytes += quota.usage
            summary.accounts.append(
                AccountUsage(
                    account_id=account.account_id,
                    email=account.email,
                    role=account.role.value,
                    total_bytes=quota.limit,
                    used_bytes=quota.usage,
                    status=STATUS_OK,
                )
            )
        return summary
