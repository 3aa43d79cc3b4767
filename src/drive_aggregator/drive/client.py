"""Google Drive v3 REST client authenticated per account."""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError
from urllib.parse import quote, urlencode

from drive_aggregator.drive.models import (
    FIELD_FILES,
    FIELD_NEXT_PAGE_TOKEN,
    FIELD_PERMISSIONS,
    FOLDER_MIME_TYPE,
    NODE_FIELDS,
    DriveFile,
    DriveFolder,
    DriveNode,
    MalformedNodeError,
    Permission,
    StorageQuota,
    parse_node,
    parse_permission,
    parse_quota,
)

if TYPE_CHECKING:
    from drive_aggregator.accounts.credentials import CredentialProvider

logger = logging.getLogger(__name__)

DRIVE_BASE_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
DEFAULT_PAGE_SIZE = 1000


class DriveApiError(Exception):
    """Raised when the Drive API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Drive API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def escape_query_value(value: str) -> str:
    """Escape a string literal for use inside a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient:
    """Client for the Drive REST API shared by every connected account.

    Each call names the account it acts for; the bearer token is obtained
    from the credential provider immediately before the request, so an
    expired token is refreshed transparently.
    """

    def __init__(self, credentials: CredentialProvider) -> None:
        """Initialise the client.

        Args:
            credentials: Provider returning a valid bearer token per account ID.
        """
        self._credentials = credentials

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        account_id: str,
        method: str,
        url: str,
        body: bytes | None = None,
        content_type: str | None = None,
    ) -> bytes:
        """Perform an authenticated request and return the raw response body.

        Raises:
            CredentialError: If no valid token can be obtained for the account.
            DriveApiError: If the API returns a non-2xx status code.
        """
        token = self._credentials.ensure_valid_token(account_id)
        headers = {"Authorization": f"Bearer {token}"}
        if content_type is not None:
            headers["Content-Type"] = content_type
        req = urllib_request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib_request.urlopen(req) as resp:
                return resp.read()  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            logger.warning(
                "[_request] drive api call failed; method:%s;status:%d;account_id:%s",
                method,
                exc.code,
                account_id,
            )
            raise DriveApiError(exc.code, detail) from exc

    def _json(
        self,
        account_id: str,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        content_type = "application/json; charset=UTF-8" if payload is not None else None
        raw = self._request(account_id, method, url, body=body, content_type=content_type)
        return json.loads(raw) if raw else {}  # type: ignore[no-any-return]

    @staticmethod
    def _url(path: str, params: dict[str, Any] | None = None, base: str = DRIVE_BASE_URL) -> str:
        url = f"{base}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def query(
        self,
        account_id: str,
        q: str,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[DriveNode]:
        """Run a files.list query, following nextPageToken pagination.

        Args:
            account_id: Account to query.
            q: Drive search expression.
            order_by: Optional orderBy clause (e.g. "quotaBytesUsed desc").
            limit: Stop after this many nodes; None returns every match.

        Returns:
            Parsed nodes in the order the API returned them.
        """
        nodes: list[DriveNode] = []
        page_token: str | None = None
        while True:
            page_size = DEFAULT_PAGE_SIZE
            if limit is not None:
                page_size = min(limit - len(nodes), DEFAULT_PAGE_SIZE)
            params: dict[str, Any] = {
                "q": q,
                "fields": f"nextPageToken,files({NODE_FIELDS})",
                "pageSize": page_size,
            }
            if order_by:
                params["orderBy"] = order_by
            if page_token:
                params["pageToken"] = page_token
            response = self._json(account_id, "GET", self._url("/files", params))
            nodes.extend(parse_node(raw) for raw in response.get(FIELD_FILES, []))
            page_token = response.get(FIELD_NEXT_PAGE_TOKEN)
            if not page_token or (limit is not None and len(nodes) >= limit):
                break
        return nodes if limit is None else nodes[:limit]

    def list_children(self, account_id: str, parent_id: str) -> list[DriveNode]:
        """List the direct, non-trashed children of a folder."""
        q = f"'{escape_query_value(parent_id)}' in parents and trashed = false"
        return self.query(account_id, q)

    def list_files(self, account_id: str) -> list[DriveNode]:
        """List every non-trashed node owned by the account."""
        return self.query(account_id, "'me' in owners and trashed = false")

    def list_largest_files(self, account_id: str, limit: int) -> list[DriveFile]:
        """Return up to ``limit`` owned files ordered by descending byte size."""
        q = f"'me' in owners and trashed = false and mimeType != '{FOLDER_MIME_TYPE}'"
        nodes = self.query(account_id, q, order_by="quotaBytesUsed desc", limit=limit)
        files = [node for node in nodes if isinstance(node, DriveFile)]
        return sorted(files, key=lambda f: f.size, reverse=True)

    def find_folders_by_name(self, account_id: str, name: str) -> list[DriveFolder]:
        """Return every non-trashed folder in the account named exactly ``name``."""
        q = (
            f"name = '{escape_query_value(name)}'"
            f" and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        # Drive's name comparison is not guaranteed to be case-sensitive.
        return [
            node
            for node in self.query(account_id, q)
            if isinstance(node, DriveFolder) and node.name == name
        ]

    # ------------------------------------------------------------------
    # Single nodes
    # ------------------------------------------------------------------

    def get_node(self, account_id: str, node_id: str, fields: str = NODE_FIELDS) -> DriveNode:
        """Fetch and validate one node's metadata."""
        url = self._url(f"/files/{quote(node_id, safe='')}", {"fields": fields})
        return parse_node(self._json(account_id, "GET", url))

    def get_root_id(self, account_id: str) -> str:
        """Resolve the real ID behind the account's ``root`` alias."""
        response = self._json(account_id, "GET", self._url("/files/root", {"fields": "id"}))
        root_id = response.get("id")
        if not isinstance(root_id, str) or not root_id:
            raise MalformedNodeError(f"Root folder response has no id: {response!r}")
        return root_id

    def download(self, account_id: str, file_id: str) -> bytes:
        """Download a file's full byte content."""
        url = self._url(f"/files/{quote(file_id, safe='')}", {"alt": "media"})
        return self._request(account_id, "GET", url)

    def upload(
        self,
        account_id: str,
        name: str,
        mime_type: str,
        parent_id: str | None,
        content: bytes,
        extra_metadata: dict[str, Any] | None = None,
    ) -> DriveFile:
        """Create a file with a single multipart/related request.

        Args:
            account_id: Account that will own the new file.
            name: Display name of the new file.
            mime_type: MIME type recorded for the file and sent with the content part.
            parent_id: Folder to create the file in; None uploads to the root.
            content: Raw file bytes.
            extra_metadata: Additional writable file fields (e.g. createdTime).

        Returns:
            Metadata of the created node.
        """
        metadata: dict[str, Any] = {"name": name, "mimeType": mime_type}
        if parent_id:
            metadata["parents"] = [parent_id]
        if extra_metadata:
            metadata.update(extra_metadata)

        boundary = f"drive-aggregator-{uuid.uuid4().hex}"
        body = b"".join(
            [
                f"--{boundary}\r\n".encode(),
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                json.dumps(metadata).encode("utf-8"),
                f"\r\n--{boundary}\r\n".encode(),
                f"Content-Type: {mime_type}\r\n\r\n".encode(),
                content,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )
        url = self._url(
            "/files",
            {"uploadType": "multipart", "fields": NODE_FIELDS},
            base=DRIVE_UPLOAD_URL,
        )
        raw = self._request(
            account_id,
            "POST",
            url,
            body=body,
            content_type=f"multipart/related; boundary={boundary}",
        )
        node = parse_node(json.loads(raw))
        if not isinstance(node, DriveFile):
            raise MalformedNodeError(f"Upload returned a folder node: {node.id}")
        logger.info(
            "[upload] uploaded file; account_id:%s;file_id:%s;bytes:%d",
            account_id,
            node.id,
            len(content),
        )
        return node

    def create_folder(
        self, account_id: str, name: str, parent_id: str | None = None
    ) -> DriveFolder:
        """Create a folder under ``parent_id`` (the root when None)."""
        payload: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            payload["parents"] = [parent_id]
        url = self._url("/files", {"fields": NODE_FIELDS})
        node = parse_node(self._json(account_id, "POST", url, payload))
        if not isinstance(node, DriveFolder):
            raise MalformedNodeError(f"Folder create returned a non-folder node: {node.id}")
        logger.info(
            "[create_folder] created folder; account_id:%s;folder_id:%s;name:%s",
            account_id,
            node.id,
            name,
        )
        return node

    def delete(self, account_id: str, node_id: str) -> None:
        """Permanently delete a node."""
        self._request(account_id, "DELETE", self._url(f"/files/{quote(node_id, safe='')}"))
        logger.info("[delete] deleted node; account_id:%s;node_id:%s", account_id, node_id)

    # ------------------------------------------------------------------
    # Sharing and quota
    # ------------------------------------------------------------------

    def list_permissions(self, account_id: str, node_id: str) -> list[Permission]:
        url = self._url(
            f"/files/{quote(node_id, safe='')}/permissions",
            {"fields": "permissions(id,role,type,emailAddress)"},
        )
        response = self._json(account_id, "GET", url)
        return [parse_permission(raw) for raw in response.get(FIELD_PERMISSIONS, [])]

    def create_permission(
        self,
        account_id: str,
        node_id: str,
        role: str,
        type_: str,
        email_address: str,
    ) -> Permission:
        """Grant ``role`` on a node to ``email_address``."""
        url = self._url(
            f"/files/{quote(node_id, safe='')}/permissions",
            {"fields": "id,role,type,emailAddress", "sendNotificationEmail": "false"},
        )
        payload = {"role": role, "type": type_, "emailAddress": email_address}
        permission = parse_permission(self._json(account_id, "POST", url, payload))
        logger.info(
            "[create_permission] shared node; account_id:%s;node_id:%s;role:%s;email:%s",
            account_id,
            node_id,
            role,
            email_address,
        )
        return permission

    def get_storage_quota(self, account_id: str) -> StorageQuota:
        """Fetch the account's live storage limit and usage."""
        response = self._json(
            account_id, "GET", self._url("/about", {"fields": "storageQuota"})
        )
        return parse_quota(response)

