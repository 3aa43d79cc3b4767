"""Transfer orchestrator — moves files between connected accounts."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from drive_aggregator.drive.models import (
    FIELD_CREATED_TIME,
    FIELD_DESCRIPTION,
    FIELD_MODIFIED_TIME,
    DriveFile,
    NamingConflictError,
    has_name_conflict,
)

if TYPE_CHECKING:
    from drive_aggregator.accounts.credentials import CredentialProvider
    from drive_aggregator.accounts.store import AccountStore
    from drive_aggregator.drive.cache import FileMetadataCache
    from drive_aggregator.drive.client import DriveClient
    from drive_aggregator.drive.paths import PathRecreator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class TransferError(Exception):
    """Raised when a node cannot be moved at all."""


@dataclass
class BatchResult:
    """Outcome of a batch move.

    Attributes:
        total: Number of files attempted.
        moved: IDs (in the source account) of files that were moved.
        failures: Source file ID mapped to the error message for each failure.
    """

    total: int
    moved: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


class TransferOrchestrator:
    """Copy-then-delete relocation of files from one account to another."""

    def __init__(
        self,
        drive_client: DriveClient,
        credentials: CredentialProvider,
        path_recreator: PathRecreator,
        account_store: AccountStore,
        file_cache: FileMetadataCache,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            drive_client: Client for the Drive REST API.
            credentials: Provider of per-account bearer tokens.
            path_recreator: Mirrors source folder paths in the target account.
            account_store: Account records, used to look up owner emails.
            file_cache: Cached listings; moved sources are flagged deleted there.
        """
        self._drive = drive_client
        self._credentials = credentials
        self._paths = path_recreator
        self._accounts = account_store
        self._file_cache = file_cache

    def move_file(
        self,
        file_id: str,
        source_account_id: str,
        target_account_id: str,
        target_folder_id: str,
        maintain_path: bool = False,
        share_with_email: str | None = None,
    ) -> DriveFile:
        """Move one file to another account.

        Steps run strictly in order and are never retried:
            1. Obtain tokens for both accounts.
            2. Fetch the file's metadata.
            3. Download its bytes.
            4. Resolve the destination folder, recreating the source path
               under ``target_folder_id`` when ``maintain_path`` is set.
            5. Abort if the destination already holds the name (any case).
            6. Upload under the same name and MIME type.
            7. Grant ``share_with_email`` read access, if given.
            8. Delete the source file.
            9. Flag the source as deleted in the cached listing.

        Every failure before step 8 leaves the source untouched. A failed
        delete leaves the file present in both accounts. A failed cache
        update is logged and does not fail the move.

        Args:
            file_id: File to move, in the source account.
            source_account_id: Account currently holding the file.
            target_account_id: Account to move it to.
            target_folder_id: Destination folder (or path root) in the target account.
            maintain_path: Recreate the file's folder path under ``target_folder_id``.
            share_with_email: Email granted reader access on the new copy.

        Returns:
            Metadata of the newly created file in the target account.

        Raises:
            CredentialError: If either account cannot be authenticated.
            TransferError: If the node is a folder.
            NamingConflictError: If the destination name is taken.
            DriveApiError: If any remote call fails.
        """
        self._credentials.ensure_valid_token(source_account_id)
        self._credentials.ensure_valid_token(target_account_id)

        node = self._drive.get_node(source_account_id, file_id)
        if not isinstance(node, DriveFile):
            raise TransferError(f"'{node.name}' is a folder; only files can be moved")

        content = self._drive.download(source_account_id, file_id)
        logger.info(
            "[move_file] downloaded source file; file_id:%s;name:%s;bytes:%d",
            file_id,
            node.name,
            len(content),
        )

        destination_id = target_folder_id
        if maintain_path and node.parent_id:
            destination_id = self._paths.resolve_destination_folder(
                node.parent_id, source_account_id, target_account_id, target_folder_id
            )

        siblings = self._drive.list_children(target_account_id, destination_id)
        if has_name_conflict([s.name for s in siblings], node.name):
            logger.warning(
                "[move_file] naming conflict at destination; name:%s;folder_id:%s",
                node.name,
                destination_id,
            )
            raise NamingConflictError(node.name, destination_id)

        uploaded = self._drive.upload(
            target_account_id,
            node.name,
            node.mime_type,
            destination_id,
            content,
            extra_metadata=self._carried_metadata(node),
        )

        if share_with_email:
            self._drive.create_permission(
                target_account_id, uploaded.id, "reader", "user", share_with_email
            )

        try:
            self._drive.delete(source_account_id, file_id)
        except Exception:
            logger.error(
                "[move_file] source delete failed; file now exists in both accounts;"
                " file_id:%s;new_file_id:%s",
                file_id,
                uploaded.id,
            )
            raise

        try:
            self._file_cache.mark_deleted(source_account_id, file_id)
        except Exception:
            logger.warning(
                "[move_file] could not update cached listing; file_id:%s",
                file_id,
                exc_info=True,
            )

        logger.info(
            "[move_file] moved file; file_id:%s;new_file_id:%s;source:%s;target:%s",
            file_id,
            uploaded.id,
            source_account_id,
            target_account_id,
        )
        return uploaded

    def move_photo(
        self,
        file_id: str,
        source_account_id: str,
        target_account_id: str,
        target_folder_id: str,
        maintain_path: bool = False,
    ) -> DriveFile:
        """Move a photo, keeping it visible to the source account's owner."""
        owner = self._accounts.get(source_account_id)
        return self.move_file(
            file_id,
            source_account_id,
            target_account_id,
            target_folder_id,
            maintain_path=maintain_path,
            share_with_email=owner.email,
        )

    def move_files_in_batch(
        self,
        file_ids: list[str],
        source_account_id: str,
        target_account_id: str,
        target_folder_id: str,
        on_progress: ProgressCallback | None = None,
        maintain_path: bool = True,
    ) -> BatchResult:
        """Move files one after another in input order.

        A failing file is logged and recorded, and the batch carries on.
        ``on_progress(completed, total)`` is called after every attempt,
        successful or not.

        Returns:
            BatchResult listing moved files and per-file failure messages.
        """
        total = len(file_ids)
        result = BatchResult(total=total)
        for completed, file_id in enumerate(file_ids, start=1):
            try:
                self.move_file(
                    file_id,
                    source_account_id,
                    target_account_id,
                    target_folder_id,
                    maintain_path=maintain_path,
                )
                result.moved.append(file_id)
            except Exception as exc:
                logger.error(
                    "[move_files_in_batch] file move failed; file_id:%s;error:%s",
                    file_id,
                    exc,
                )
                result.failures[file_id] = str(exc)
            if on_progress is not None:
                on_progress(completed, total)

        if result.has_failures:
            logger.warning(
                "[move_files_in_batch] some files failed; moved:%d;failed:%d",
                len(result.moved),
                len(result.failures),
            )
        else:
            logger.info("[move_files_in_batch] batch complete; moved:%d", len(result.moved))
        return result

    @staticmethod
    def _carried_metadata(node: DriveFile) -> dict[str, Any]:
        """Writable metadata copied onto the new file; photos and videos keep capture times."""
        if not node.is_media:
            return {}
        carried: dict[str, Any] = {}
        if node.created_time:
            carried[FIELD_CREATED_TIME] = node.created_time
        if node.modified_time:
            carried[FIELD_MODIFIED_TIME] = node.modified_time
        if node.description:
            carried[FIELD_DESCRIPTION] = node.description
        return carried
