"""Data models for Google Drive nodes, quotas and permissions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Marks a node as a folder; every other MIME type is a leaf file.
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Drive API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_MIME_TYPE = "mimeType"
FIELD_SIZE = "size"
FIELD_PARENTS = "parents"
FIELD_CREATED_TIME = "createdTime"
FIELD_MODIFIED_TIME = "modifiedTime"
FIELD_THUMBNAIL_LINK = "thumbnailLink"
FIELD_WEB_VIEW_LINK = "webViewLink"
FIELD_DESCRIPTION = "description"
FIELD_FILES = "files"
FIELD_NEXT_PAGE_TOKEN = "nextPageToken"
FIELD_PERMISSIONS = "permissions"
FIELD_STORAGE_QUOTA = "storageQuota"

NODE_FIELDS = (
    "id,name,mimeType,size,createdTime,modifiedTime,parents,"
    "thumbnailLink,webViewLink,description"
)


class MalformedNodeError(ValueError):
    """Raised when a Drive API response does not describe a valid node."""


class NamingConflictError(Exception):
    """Raised when the destination folder already holds a node with the same name."""

    def __init__(self, name: str, folder_id: str) -> None:
        super().__init__(f"An item named '{name}' already exists in the destination folder")
        self.name = name
        self.folder_id = folder_id


def has_name_conflict(names: list[str], name: str) -> bool:
    """Return True if ``name`` matches any of ``names`` ignoring case."""
    wanted = name.casefold()
    return any(existing.casefold() == wanted for existing in names)


@dataclass(frozen=True)
class DriveFile:
    """A leaf file stored in one account."""

    id: str
    name: str
    mime_type: str
    size: int = 0
    parent_id: str | None = None
    created_time: str = ""
    modified_time: str = ""
    thumbnail_link: str | None = None
    web_view_link: str | None = None
    description: str | None = None

    is_folder = False

    @property
    def is_media(self) -> bool:
        """True for photos and videos, whose capture metadata is carried on moves."""
        return self.mime_type.startswith(("image/", "video/"))


@dataclass(frozen=True)
class DriveFolder:
    """A folder node. Folders have no byte size."""

    id: str
    name: str
    parent_id: str | None = None
    created_time: str = ""
    modified_time: str = ""
    web_view_link: str | None = None

    is_folder = True
    mime_type = FOLDER_MIME_TYPE


DriveNode = DriveFile | DriveFolder


@dataclass(frozen=True)
class StorageQuota:
    """Storage usage of one account, in bytes.

    Attributes:
        limit: Total capacity. Zero means the account reports no limit.
        usage: Bytes currently used.
    """

    limit: int
    usage: int

    @property
    def free(self) -> int:
        return self.limit - self.usage

    @property
    def is_unlimited(self) -> bool:
        return self.limit <= 0


@dataclass(frozen=True)
class Permission:
    """A sharing grant on a node."""

    id: str
    role: str
    type: str
    email_address: str | None = None


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedNodeError(f"Drive node is missing '{key}': {raw!r}")
    return value


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    return value if isinstance(value, str) else None


def parse_node(raw: dict[str, Any]) -> DriveNode:
    """Map a raw Drive API file resource to a DriveFile or DriveFolder.

    Args:
        raw: JSON object from a files.get / files.list / files.create response.

    Returns:
        DriveFolder when the MIME type is the folder sentinel, else DriveFile.

    Raises:
        MalformedNodeError: If id, name or mimeType is absent or not a string,
            or if size is not an integer string.
    """
    if not isinstance(raw, dict):
        raise MalformedNodeError(f"Drive node must be an object, got {type(raw).__name__}")
    node_id = _require_str(raw, FIELD_ID)
    name = _require_str(raw, FIELD_NAME)
    mime_type = _require_str(raw, FIELD_MIME_TYPE)

    parents = raw.get(FIELD_PARENTS) or []
    if not isinstance(parents, list):
        raise MalformedNodeError(f"Drive node has non-list parents: {raw!r}")
    parent_id = parents[0] if parents else None

    created_time = _optional_str(raw, FIELD_CREATED_TIME) or ""
    modified_time = _optional_str(raw, FIELD_MODIFIED_TIME) or ""

    if mime_type == FOLDER_MIME_TYPE:
        return DriveFolder(
            id=node_id,
            name=name,
            parent_id=parent_id,
            created_time=created_time,
            modified_time=modified_time,
            web_view_link=_optional_str(raw, FIELD_WEB_VIEW_LINK),
        )

    try:
        size = int(raw.get(FIELD_SIZE) or 0)
    except (TypeError, ValueError) as exc:
        raise MalformedNodeError(f"Drive node has non-integer size: {raw!r}") from exc

    return DriveFile(
        id=node_id,
        name=name,
        mime_type=mime_type,
        size=size,
        parent_id=parent_id,
        created_time=created_time,
        modified_time=modified_time,
        thumbnail_link=_optional_str(raw, FIELD_THUMBNAIL_LINK),
        web_view_link=_optional_str(raw, FIELD_WEB_VIEW_LINK),
        description=_optional_str(raw, FIELD_DESCRIPTION),
    )


def node_to_dict(node: DriveNode) -> dict[str, Any]:
    """Serialize a node back to the Drive API resource shape."""
    raw: dict[str, Any] = {
        FIELD_ID: node.id,
        FIELD_NAME: node.name,
        FIELD_MIME_TYPE: node.mime_type,
        FIELD_PARENTS: [node.parent_id] if node.parent_id else [],
        FIELD_CREATED_TIME: node.created_time,
        FIELD_MODIFIED_TIME: node.modified_time,
    }
    if node.web_view_link:
        raw[FIELD_WEB_VIEW_LINK] = node.web_view_link
    if isinstance(node, DriveFile):
        raw[FIELD_SIZE] = str(node.size)
        if node.thumbnail_link:
            raw[FIELD_THUMBNAIL_LINK] = node.thumbnail_link
        if node.description:
            raw[FIELD_DESCRIPTION] = node.description
    return raw


def parse_quota(raw: dict[str, Any]) -> StorageQuota:
    """Map an about.get response to a StorageQuota.

    Drive reports byte counts as strings and omits ``limit`` for unlimited
    accounts.
    """
    quota = raw.get(FIELD_STORAGE_QUOTA) or {}
    return StorageQuota(
        limit=int(quota.get("limit") or 0),
        usage=int(quota.get("usage") or 0),
    )


def parse_permission(raw: dict[str, Any]) -> Permission:
    """Map a permissions resource to a Permission."""
    return Permission(
        id=str(raw.get(FIELD_ID, "")),
        role=str(raw.get("role", "")),
        type=str(raw.get("type", "")),
        email_address=_optional_str(raw, "emailAddress"),
    )
