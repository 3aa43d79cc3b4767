"""Data models for connected Google accounts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class AccountRole(str, Enum):
    PRIMARY = "primary"
    BACKUP = "backup"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    ERROR = "error"


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass
class Account:
    """A Google account connected by the aggregator user.

    Attributes:
        account_id: Google account identifier (stable across reconnects).
        email: Account email address; used for sharing grants.
        name: Display name.
        avatar_url: Profile picture URL, if any.
        access_token: Current OAuth bearer token.
        refresh_token: OAuth refresh token used to renew ``access_token``.
        token_expires_at: Expiry of ``access_token`` (timezone-aware UTC).
        total_storage: Quota limit in bytes, as last observed.
        used_storage: Bytes used, as last observed.
        role: Primary or backup.
        shared_folder_id: Backup accounts only. The folder shared with the
            primary account's owner that acts as this account's visible root.
        status: Credential health of the account.
        connected_at: When the account was first connected.
    """

    account_id: str
    email: str
    name: str
    access_token: str
    refresh_token: str
    role: AccountRole = AccountRole.BACKUP
    avatar_url: str | None = None
    token_expires_at: datetime | None = None
    total_storage: int = 0
    used_storage: int = 0
    shared_folder_id: str | None = None
    status: AccountStatus = AccountStatus.ACTIVE
    connected_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def free_storage(self) -> int:
        return self.total_storage - self.used_storage

    @property
    def is_primary(self) -> bool:
        return self.role is AccountRole.PRIMARY

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "account_id": self.account_id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_expires_at": (
                self.token_expires_at.isoformat() if self.token_expires_at else None
            ),
            "total_storage": self.total_storage,
            "used_storage": self.used_storage,
            "role": self.role.value,
            "shared_folder_id": self.shared_folder_id,
            "status": self.status.value,
            "connected_at": self.connected_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        """Rebuild an Account from its ``to_dict`` form."""
        return cls(
            account_id=data["account_id"],
            email=data["email"],
            name=data.get("name", ""),
            avatar_url=data.get("avatar_url"),
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            token_expires_at=_parse_datetime(data.get("token_expires_at")),
            total_storage=int(data.get("total_storage") or 0),
            used_storage=int(data.get("used_storage") or 0),
            role=AccountRole(data.get("role", AccountRole.BACKUP.value)),
            shared_folder_id=data.get("shared_folder_id"),
            status=AccountStatus(data.get("status", AccountStatus.ACTIVE.value)),
            connected_at=_parse_datetime(data.get("connected_at")) or datetime.now(tz=UTC),
        )
