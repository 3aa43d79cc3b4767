"""Per-account file listing cache backed by Azure Blob Storage."""

from __future__ import annotations

import contextlib
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobClient, BlobServiceClient

from drive_aggregator.drive.models import DriveNode, MalformedNodeError, node_to_dict, parse_node

if TYPE_CHECKING:
    from drive_aggregator.config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_CACHE_CONTAINER = "drive-aggregator-state"
DEFAULT_CACHE_BLOB_PREFIX = "file-cache/"


class FileMetadataCache:
    """Last known file listing of each account.

    Used only as a display fallback when a live listing call fails; it is
    never consulted by transfers. Each account's records live in one JSON
    blob mapping file ID to ``{"node": ..., "synced_at": ..., "is_deleted": ...}``.
    """

    def __init__(
        self,
        storage_connection_string: str,
        container: str = DEFAULT_CACHE_CONTAINER,
        blob_prefix: str = DEFAULT_CACHE_BLOB_PREFIX,
    ) -> None:
        """Initialise the file cache.

        Args:
            storage_connection_string: Azure Storage connection string.
            container: Blob container name for cache storage.
            blob_prefix: Prefix for cache blob paths (e.g. "file-cache/").
        """
        self._blob_service = BlobServiceClient.from_connection_string(storage_connection_string)
        self._container = container
        self._blob_prefix = blob_prefix

    def _blob_client(self, account_id: str) -> BlobClient:
        container_client = self._blob_service.get_container_client(self._container)
        return container_client.get_blob_client(f"{self._blob_prefix}{account_id}.json")

    def _load(self, account_id: str) -> dict[str, dict[str, Any]]:
        try:
            data = self._blob_client(account_id).download_blob().readall()
        except ResourceNotFoundError:
            logger.info("[file_cache] cache miss; account_id:%s", account_id)
            return {}
        return json.loads(data)  # type: ignore[no-any-return]

    def _store(self, account_id: str, records: dict[str, dict[str, Any]]) -> None:
        container_client = self._blob_service.get_container_client(self._container)
        with contextlib.suppress(Exception):
            container_client.create_container()
        self._blob_client(account_id).upload_blob(
            json.dumps(records).encode("utf-8"), overwrite=True
        )

    def sync_files(self, account_id: str, nodes: list[DriveNode]) -> None:
        """Replace the account's cached listing with a complete live listing.

        Nodes are upserted; cached records absent from ``nodes`` were moved
        or deleted elsewhere and are flagged deleted.

        Args:
            account_id: Account the nodes belong to.
            nodes: Every node from a successful live listing.
        """
        records = self._load(account_id)
        synced_at = datetime.now(tz=UTC).isoformat()
        listed = {node.id for node in nodes}
        gone = 0
        for file_id, record in records.items():
            if file_id not in listed and not record.get("is_deleted"):
                record["is_deleted"] = True
                gone += 1
        for node in nodes:
            records[node.id] = {
                "node": node_to_dict(node),
                "synced_at": synced_at,
                "is_deleted": False,
            }
        self._store(account_id, records)
        logger.info(
            "[file_cache] synced listing; account_id:%s;file_count:%d;gone:%d",
            account_id,
            len(nodes),
            gone,
        )

    def get_cached_files(self, account_id: str) -> list[DriveNode]:
        """Return the cached, non-deleted nodes of an account.

        Records that no longer parse are skipped.
        """
        nodes: list[DriveNode] = []
        for file_id, record in self._load(account_id).items():
            if record.get("is_deleted"):
                continue
            try:
                nodes.append(parse_node(record.get("node", {})))
            except MalformedNodeError:
                logger.warning(
                    "[file_cache] skipping unreadable record; account_id:%s;file_id:%s",
                    account_id,
                    file_id,
                )
        return nodes

    def mark_deleted(self, account_id: str, file_id: str) -> None:
        """Flag a cached record as deleted so it is no longer served."""
        records = self._load(account_id)
        if file_id not in records:
            return
        records[file_id]["is_deleted"] = True
        self._store(account_id, records)

    def purge_account(self, account_id: str) -> None:
        """Drop every cached record of an account."""
        try:
            self._blob_client(account_id).delete_blob()
        except ResourceNotFoundError:
            return
        logger.info("[file_cache] purged listing; account_id:%s", account_id)


def file_cache_from_config(config: AppConfig) -> FileMetadataCache:
    """Construct a FileMetadataCache from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured FileMetadataCache instance.
    """
    return FileMetadataCache(
        storage_connection_string=config.storage_connection_string,
        container=config.state_container,
        blob_prefix=config.file_cache_blob_prefix,
    )
