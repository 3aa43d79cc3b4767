"""HTTP trigger blueprint — account, browsing, storage and transfer endpoints."""

import json
import logging
from dataclasses import asdict
from typing import Any

import azure.functions as func

from drive_aggregator import __version__
from drive_aggregator.accounts.credentials import CredentialError
from drive_aggregator.accounts.store import AccountNotFoundError
from drive_aggregator.config import load_config
from drive_aggregator.drive.client import DriveApiError
from drive_aggregator.drive.models import MalformedNodeError, NamingConflictError, node_to_dict
from drive_aggregator.drive.paths import PathDepthExceededError
from drive_aggregator.orchestration.session import DriveSession, session_from_config
from drive_aggregator.orchestration.transfer import TransferError

logger = logging.getLogger(__name__)

bp = func.Blueprint()


def _json_response(payload: Any, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(payload), status_code=status_code, mimetype="application/json"
    )


def _error_response(operation: str, exc: Exception) -> func.HttpResponse:
    """Map a failure to a JSON error response with a single message."""
    if isinstance(exc, NamingConflictError):
        status_code, message = 409, str(exc)
    elif isinstance(exc, CredentialError):
        status_code, message = 401, str(exc)
    elif isinstance(exc, AccountNotFoundError):
        status_code, message = 404, f"Account not connected: {exc.args[0]}"
    elif isinstance(exc, (DriveApiError, MalformedNodeError)):
        status_code, message = 502, str(exc)
    elif isinstance(exc, (TransferError, PathDepthExceededError, ValueError)):
        status_code, message = 400, str(exc)
    else:
        logger.error("[%s] request failed", operation, exc_info=True)
        return _json_response({"status": "error", "message": "Internal server error"}, 500)
    logger.warning("[%s] request rejected; status:%d;message:%s", operation, status_code, message)
    return _json_response({"status": "error", "message": message}, status_code)


def _session() -> DriveSession:
    return session_from_config(load_config())


def _body(req: func.HttpRequest) -> dict[str, Any]:
    try:
        body = req.get_json()
    except ValueError as exc:
        raise ValueError("Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _require(body: dict[str, Any], key: str) -> Any:
    value = body.get(key)
    if value in (None, ""):
        raise ValueError(f"Missing required field: {key}")
    return value


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint. Returns service status and version."""
    logger.info("[health_check] health check requested")
    return _json_response({"status": "ok", "version": __version__})


@bp.route(route="accounts", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def list_accounts(req: func.HttpRequest) -> func.HttpResponse:
    try:
        accounts = _session().connector.list_accounts()
        return _json_response(
            [
                {
                    "account_id": a.account_id,
                    "email": a.email,
                    "name": a.name,
                    "avatar_url": a.avatar_url,
                    "role": a.role.value,
                    "total_storage": a.total_storage,
                    "used_storage": a.used_storage,
                    "shared_folder_id": a.shared_folder_id,
                }
                for a in accounts
            ]
        )
    except Exception as exc:
        return _error_response("list_accounts", exc)


@bp.route(route="accounts", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def connect_account(req: func.HttpRequest) -> func.HttpResponse:
    """Register an account after the OAuth code exchange has produced its tokens."""
    try:
        body = _body(req)
        account = _session().connector.connect_account(
            account_id=_require(body, "account_id"),
            email=_require(body, "email"),
            name=body.get("name", ""),
            access_token=_require(body, "access_token"),
            refresh_token=body.get("refresh_token", ""),
            avatar_url=body.get("avatar_url"),
            expires_in=int(body.get("expires_in", 3600)),
        )
        return _json_response(
            {
                "status": "ok",
                "account_id": account.account_id,
                "role": account.role.value,
                "shared_folder_id": account.shared_folder_id,
            },
            201,
        )
    except Exception as exc:
        return _error_response("connect_account", exc)


@bp.route(route="accounts/{account_id}", methods=["DELETE"], auth_level=func.AuthLevel.FUNCTION)
def remove_account(req: func.HttpRequest) -> func.HttpResponse:
    try:
        _session().connector.remove_account(req.route_params["account_id"])
        return _json_response({"status": "ok"})
    except Exception as exc:
        return _error_response("remove_account", exc)


@bp.route(
    route="accounts/{account_id}/primary", methods=["POST"], auth_level=func.AuthLevel.FUNCTION
)
def set_primary_account(req: func.HttpRequest) -> func.HttpResponse:
    try:
        account = _session().connector.set_primary_account(req.route_params["account_id"])
        return _json_response({"status": "ok", "account_id": account.account_id})
    except Exception as exc:
        return _error_response("set_primary_account", exc)


@bp.route(route="accounts/{account_id}/files", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def list_files(req: func.HttpRequest) -> func.HttpResponse:
    """List an account's files; serves the cached listing when Drive is unreachable."""
    try:
        nodes = _session().explorer.get_files(req.route_params["account_id"])
        return _json_response([node_to_dict(node) for node in nodes])
    except Exception as exc:
        return _error_response("list_files", exc)


@bp.route(
    route="accounts/{account_id}/files", methods=["POST"], auth_level=func.AuthLevel.FUNCTION
)
def upload_file(req: func.HttpRequest) -> func.HttpResponse:
    """Upload the raw request body as a new file (``?name=&mimeType=&parentId=``)."""
    try:
        name = req.params.get("name")
        if not name:
            raise ValueError("Missing required query parameter: name")
        node = _session().explorer.upload_file(
            req.route_params["account_id"],
            name,
            req.params.get("mimeType") or "application/octet-stream",
            req.get_body(),
            parent_id=req.params.get("parentId"),
        )
        return _json_response(node_to_dict(node), 201)
    except Exception as exc:
        return _error_response("upload_file", exc)


@bp.route(
    route="accounts/{account_id}/files/{node_id}",
    methods=["DELETE"],
    auth_level=func.AuthLevel.FUNCTION,
)
def delete_node(req: func.HttpRequest) -> func.HttpResponse:
    try:
        params = req.route_params
        _session().explorer.delete_node(params["account_id"], params["node_id"])
        return _json_response({"status": "ok"})
    except Exception as exc:
        return _error_response("delete_node", exc)


@bp.route(
    route="accounts/{account_id}/folders", methods=["POST"], auth_level=func.AuthLevel.FUNCTION
)
def create_folder(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = _body(req)
        folder = _session().explorer.create_folder(
            req.route_params["account_id"],
            str(_require(body, "name")),
            parent_id=body.get("parent_id"),
        )
        return _json_response(node_to_dict(folder), 201)
    except Exception as exc:
        return _error_response("create_folder", exc)


@bp.route(
    route="accounts/{account_id}/largest", methods=["GET"], auth_level=func.AuthLevel.FUNCTION
)
def largest_files(req: func.HttpRequest) -> func.HttpResponse:
    try:
        limit_param = req.params.get("limit")
        limit = int(limit_param) if limit_param else None
        files = _session().explorer.get_largest_files(req.route_params["account_id"], limit)
        return _json_response([node_to_dict(f) for f in files])
    except Exception as exc:
        return _error_response("largest_files", exc)


@bp.route(route="storage", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def storage_summary(req: func.HttpRequest) -> func.HttpResponse:
    """Aggregated storage across every connected account."""
    try:
        summary = _session().explorer.storage_summary()
        return _json_response(
            {
                "totals": {
                    "total_bytes": summary.total_bytes,
                    "used_bytes": summary.used_bytes,
                    "free_bytes": summary.free_bytes,
                    "percent_used": summary.percent_used,
                },
                "accounts": [
                    {**asdict(usage), "free_bytes": usage.free_bytes}
                    for usage in summary.accounts
                ],
            }
        )
    except Exception as exc:
        return _error_response("storage_summary", exc)


@bp.route(route="transfers", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def move_file(req: func.HttpRequest) -> func.HttpResponse:
    """Move one file between accounts."""
    logger.info("[move_file] transfer requested")
    try:
        body = _body(req)
        session = _session()
        args = (
            _require(body, "file_id"),
            _require(body, "source_account_id"),
            _require(body, "target_account_id"),
            _require(body, "target_folder_id"),
        )
        maintain_path = bool(body.get("maintain_path", False))
        if body.get("photo"):
            moved = session.transfers.move_photo(*args, maintain_path=maintain_path)
        else:
            moved = session.transfers.move_file(*args, maintain_path=maintain_path)
        return _json_response({"status": "ok", "file": node_to_dict(moved)})
    except Exception as exc:
        return _error_response("move_file", exc)


@bp.route(route="transfers/batch", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def move_files_in_batch(req: func.HttpRequest) -> func.HttpResponse:
    """Move several files sequentially; per-file failures are reported, not fatal."""
    logger.info("[move_files_in_batch] batch transfer requested")
    try:
        body = _body(req)
        file_ids = _require(body, "file_ids")
        if not isinstance(file_ids, list):
            raise ValueError("file_ids must be a list")
        result = _session().transfers.move_files_in_batch(
            [str(f) for f in file_ids],
            _require(body, "source_account_id"),
            _require(body, "target_account_id"),
            _require(body, "target_folder_id"),
            on_progress=lambda done, total: logger.info(
                "[move_files_in_batch] progress; completed:%d;total:%d", done, total
            ),
            maintain_path=bool(body.get("maintain_path", True)),
        )
        return _json_response(
            {
                "status": "partial" if result.has_failures else "ok",
                "total": result.total,
                "moved": result.moved,
                "failures": result.failures,
            }
        )
    except Exception as exc:
        return _error_response("move_files_in_batch", exc)


@bp.route(
    route="accounts/{account_id}/relieve", methods=["POST"], auth_level=func.AuthLevel.FUNCTION
)
def auto_relieve(req: func.HttpRequest) -> func.HttpResponse:
    """Run the low-space relieve routine for a primary account on demand."""
    try:
        moved = _session().allocator.check_and_auto_relieve(req.route_params["account_id"])
        return _json_response({"status": "ok", "moved": moved})
    except Exception as exc:
        return _error_response("auto_relieve", exc)
