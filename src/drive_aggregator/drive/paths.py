"""Recreate a source folder's ancestor path inside another account."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from drive_aggregator.drive.models import DriveFolder, NamingConflictError

if TYPE_CHECKING:
    from drive_aggregator.drive.client import DriveClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATH_DEPTH = 100


class PathDepthExceededError(Exception):
    """Raised when an ancestor walk does not reach the root within the depth limit."""

    def __init__(self, folder_id: str, max_depth: int) -> None:
        super().__init__(
            f"Folder {folder_id} is nested deeper than {max_depth} levels "
            f"or its ancestry contains a cycle"
        )
        self.folder_id = folder_id
        self.max_depth = max_depth


class PathRecreator:
    """Mirrors folder paths from one account into another."""

    def __init__(self, drive_client: DriveClient, max_depth: int = DEFAULT_MAX_PATH_DEPTH) -> None:
        """Initialise the path recreator.

        Args:
            drive_client: Client used for both the source and target accounts.
            max_depth: Maximum number of ancestors walked before giving up.
        """
        self._drive = drive_client
        self._max_depth = max_depth

    def ancestor_names(self, source_account_id: str, source_folder_id: str) -> list[str]:
        """Return folder names from just below the account root down to the folder.

        The account root itself is not included, so a folder directly under
        "My Drive" yields a one-element path. Folders whose ancestry is not
        visible (no parents) end the walk as if they were at the root.

        Raises:
            PathDepthExceededError: If more than ``max_depth`` ancestors are walked.
            DriveApiError: If any metadata fetch fails.
        """
        root_id = self._drive.get_root_id(source_account_id)
        names: list[str] = []
        current: str | None = source_folder_id
        while current is not None and current != root_id:
            if len(names) >= self._max_depth:
                raise PathDepthExceededError(source_folder_id, self._max_depth)
            node = self._drive.get_node(
                source_account_id, current, fields="id,name,mimeType,parents"
            )
            names.insert(0, node.name)
            current = node.parent_id
        return names

    def materialize(
        self, target_account_id: str, target_root_folder_id: str, names: list[str]
    ) -> str:
        """Walk ``names`` under the target root, creating missing folders.

        Existing folders are matched by name ignoring case and reused, so
        repeated calls against an unchanged hierarchy return the same folder
        ID. An exact-case match wins over a case variant.

        Returns:
            ID of the leaf folder (``target_root_folder_id`` for an empty path).

        Raises:
            NamingConflictError: If a file already uses a path component's name.
        """
        current = target_root_folder_id
        for name in names:
            siblings = self._drive.list_children(target_account_id, current)
            wanted = name.casefold()
            matches = [s for s in siblings if s.name.casefold() == wanted]
            folders = [m for m in matches if isinstance(m, DriveFolder)]
            if folders:
                exact = [f for f in folders if f.name == name]
                current = (exact or folders)[0].id
                continue
            if matches:
                logger.warning(
                    "[materialize] file blocks path component; account_id:%s;name:%s",
                    target_account_id,
                    name,
                )
                raise NamingConflictError(name, current)
            created = self._drive.create_folder(target_account_id, name, current)
            logger.info(
                "[materialize] created missing folder; account_id:%s;name:%s;folder_id:%s",
                target_account_id,
                name,
                created.id,
            )
            current = created.id
        return current

    def resolve_destination_folder(
        self,
        source_folder_id: str,
        source_account_id: str,
        target_account_id: str,
        target_root_folder_id: str,
    ) -> str:
        """Resolve (creating as needed) the target folder mirroring ``source_folder_id``.

        Args:
            source_folder_id: Folder in the source account whose path is mirrored.
            source_account_id: Account owning ``source_folder_id``.
            target_account_id: Account in which the path is recreated.
            target_root_folder_id: Folder in the target account the path hangs under.

        Returns:
            ID of the leaf folder in the target account; it exists when this returns.
        """
        names = self.ancestor_names(source_account_id, source_folder_id)
        folder_id = self.materialize(target_account_id, target_root_folder_id, names)
        logger.info(
            "[resolve_destination_folder] resolved path;"
            " path:%s;target_account_id:%s;folder_id:%s",
            "/".join(names),
            target_account_id,
            folder_id,
        )
        return folder_id
