"""Storage allocator — picks backup accounts and relieves a full primary."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from drive_aggregator.accounts.models import Account, AccountRole, AccountStatus

if TYPE_CHECKING:
    from drive_aggregator.accounts.store import AccountStore
    from drive_aggregator.drive.client import DriveClient
    from drive_aggregator.orchestration.transfer import TransferOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_LOW_SPACE_RATIO = 0.10
DEFAULT_AUTO_RELIEVE_FILE_COUNT = 5


class NoBackupAccountError(Exception):
    """Raised when no backup account can take more data."""


class StorageAllocator:
    """Chooses destination accounts by free space."""

    def __init__(
        self,
        account_store: AccountStore,
        drive_client: DriveClient,
        transfers: TransferOrchestrator,
        low_space_ratio: float = DEFAULT_LOW_SPACE_RATIO,
        auto_relieve_file_count: int = DEFAULT_AUTO_RELIEVE_FILE_COUNT,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise the allocator.

        Args:
            account_store: Source of backup account records and quotas.
            drive_client: Client used to read the primary's live quota and largest files.
            transfers: Orchestrator performing the relieving moves.
            low_space_ratio: Free fraction of the primary below which auto-relieve moves files.
            auto_relieve_file_count: How many of the largest files one relieve run moves.
            rng: Random source for tie-breaking; a fresh ``random.Random`` when None.
        """
        self._accounts = account_store
        self._drive = drive_client
        self._transfers = transfers
        self._low_space_ratio = low_space_ratio
        self._auto_relieve_file_count = auto_relieve_file_count
        self._random = rng or random.Random()

    def select_best_backup_account(self, candidates: list[Account]) -> str:
        """Return the ID of the active backup account with the most free space.

        Accounts with no free space are never chosen. Exact ties on the
        maximum are broken uniformly at random.

        Raises:
            NoBackupAccountError: If no candidate has free space.
        """
        eligible = [
            account
            for account in candidates
            if account.role is AccountRole.BACKUP
            and account.status is AccountStatus.ACTIVE
            and account.free_storage > 0
        ]
        if not eligible:
            raise NoBackupAccountError("No backup account has free space")

        best_free = max(account.free_storage for account in eligible)
        tied = [account for account in eligible if account.free_storage == best_free]
        chosen = self._random.choice(tied)
        logger.info(
            "[select_best_backup_account] selected backup; account_id:%s;free_bytes:%d;tied:%d",
            chosen.account_id,
            best_free,
            len(tied),
        )
        return chosen.account_id

    def needs_relief(self, limit: int, usage: int) -> bool:
        """True when free space is below the configured fraction of capacity."""
        if limit <= 0:
            return False
        return (limit - usage) < self._low_space_ratio * limit

    def check_and_auto_relieve(self, primary_account_id: str) -> list[str]:
        """Move the primary's largest files to a backup account when space runs low.

        Reads the primary's live quota; if free space is below
        ``low_space_ratio`` of capacity, moves the ``auto_relieve_file_count``
        largest files into the chosen backup's shared folder, recreating their
        folder paths. Each failed move is logged and skipped.

        Args:
            primary_account_id: The primary account to check.

        Returns:
            Source IDs of the files that were moved (empty when no relief was needed).

        Raises:
            AccountNotFoundError: If the account is not connected.
            ValueError: If the account is not the primary.
        """
        if not self._accounts.get(primary_account_id).is_primary:
            raise ValueError("Only the primary account can be relieved")

        quota = self._drive.get_storage_quota(primary_account_id)
        if not self.needs_relief(quota.limit, quota.usage):
            logger.info(
                "[check_and_auto_relieve] primary has enough space; account_id:%s;free_bytes:%d",
                primary_account_id,
                quota.free,
            )
            return []

        candidates = [a for a in self._accounts.backups() if a.shared_folder_id]
        try:
            target_id = self.select_best_backup_account(candidates)
        except NoBackupAccountError:
            logger.warning(
                "[check_and_auto_relieve] primary low on space but no backup can take files;"
                " account_id:%s",
                primary_account_id,
            )
            return []
        target = next(a for a in candidates if a.account_id == target_id)

        largest = self._drive.list_largest_files(
            primary_account_id, limit=self._auto_relieve_file_count
        )
        largest = sorted(largest, key=lambda f: f.size, reverse=True)
        largest = largest[: self._auto_relieve_file_count]

        moved: list[str] = []
        for file in largest:
            try:
                self._transfers.move_file(
                    file.id,
                    primary_account_id,
                    target.account_id,
                    target.shared_folder_id,  # type: ignore[arg-type]
                    maintain_path=True,
                )
                moved.append(file.id)
            except Exception:
                logger.warning(
                    "[check_and_auto_relieve] auto-move failed; file_id:%s;name:%s",
                    file.id,
                    file.name,
                    exc_info=True,
                )
        logger.info(
            "[check_and_auto_relieve] relieve run complete; account_id:%s;moved:%d;attempted:%d",
            primary_account_id,
            len(moved),
            len(largest),
        )
        return moved
