"""Unit tests for orchestration/explorer.py — browsing, uploads and storage summary."""

from unittest.mock import MagicMock

import pytest
from drive_fakes import FakeDrive, InMemoryAccountStore, make_account

from drive_aggregator.accounts.models import AccountRole, AccountStatus
from drive_aggregator.accounts.store import AccountNotFoundError
from drive_aggregator.drive.client import DriveApiError
from drive_aggregator.drive.models import DriveFile, MalformedNodeError, NamingConflictError
from drive_aggregator.orchestration.explorer import (
    STATUS_OK,
    STATUS_UNAVAILABLE,
    DriveExplorer,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def file_cache() -> MagicMock:
    return MagicMock()


@pytest.fixture
def allocator() -> MagicMock:
    return MagicMock()


@pytest.fixture
def explorer(
    fake_drive: FakeDrive,
    file_cache: MagicMock,
    account_store: InMemoryAccountStore,
    allocator: MagicMock,
) -> DriveExplorer:
    fake_drive.add_account("p", limit=1000, usage=400)
    fake_drive.add_account("b", limit=2000, usage=100)
    account_store.save(make_account("p", role=AccountRole.PRIMARY))
    account_store.save(make_account("b"))
    return DriveExplorer(
        drive_client=fake_drive,  # type: ignore[arg-type]
        file_cache=file_cache,
        account_store=account_store,  # type: ignore[arg-type]
        allocator=allocator,
        largest_files_limit=2,
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class TestGetFiles:
    def test_live_listing_refreshes_cache(
        self, explorer: DriveExplorer, fake_drive: FakeDrive, file_cache: MagicMock
    ) -> None:
        file = fake_drive.add_file("p", "a.txt")

        nodes = explorer.get_files("p")

        assert nodes == [file]
        file_cache.sync_files.assert_called_once_with("p", [file])

    def test_api_failure_serves_cached_listing(
        self, explorer: DriveExplorer, fake_drive: FakeDrive, file_cache: MagicMock
    ) -> None:
        cached = [DriveFile(id="old", name="old.txt", mime_type="text/plain")]
        file_cache.get_cached_files.return_value = cached
        fake_drive.fail("list_files", DriveApiError(503, "backendError"))

        assert explorer.get_files("p") == cached
        file_cache.sync_files.assert_not_called()

    def test_largest_files_uses_default_limit(
        self, explorer: DriveExplorer, fake_drive: FakeDrive
    ) -> None:
        for size in (5, 50, 500):
            fake_drive.add_file("p", f"f{size}", size=size)

        assert [f.size for f in explorer.get_largest_files("p")] == [500, 50]
        assert len(explorer.get_largest_files("p", limit=3)) == 3


# ---------------------------------------------------------------------------
# Folders and deletion
# ---------------------------------------------------------------------------


class TestCreateFolder:
    def test_creates_under_root_by_default(
        self, explorer: DriveExplorer, fake_drive: FakeDrive
    ) -> None:
        folder = explorer.create_folder("p", "  Taxes  ")

        assert folder.name == "Taxes"
        assert folder.parent_id == fake_drive.roots["p"]

    def test_sibling_name_in_other_case_conflicts(
        self, explorer: DriveExplorer, fake_drive: FakeDrive
    ) -> None:
        fake_drive.add_folder("p", "Taxes")

        with pytest.raises(NamingConflictError):
            explorer.create_folder("p", "TAXES")
        assert fake_drive.mutations == []

    def test_blank_name_rejected(self, explorer: DriveExplorer) -> None:
        with pytest.raises(ValueError):
            explorer.create_folder("p", "   ")


class TestDeleteNode:
    def test_deletes_and_marks_cache(
        self, explorer: DriveExplorer, fake_drive: FakeDrive, file_cache: MagicMock
    ) -> None:
        file = fake_drive.add_file("p", "a.txt")

        explorer.delete_node("p", file.id)

        assert file.id not in fake_drive.nodes["p"]
        file_cache.mark_deleted.assert_called_once_with("p", file.id)


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


class TestUploadFile:
    def test_primary_upload_runs_auto_relieve_first(
        self, explorer: DriveExplorer, fake_drive: FakeDrive, allocator: MagicMock
    ) -> None:
        node = explorer.upload_file("p", "new.txt", "text/plain", b"abc")

        allocator.check_and_auto_relieve.assert_called_once_with("p")
        assert fake_drive.contents[("p", node.id)] == b"abc"

    def test_backup_upload_skips_auto_relieve(
        self, explorer: DriveExplorer, allocator: MagicMock
    ) -> None:
        explorer.upload_file("b", "new.txt", "text/plain", b"abc")

        allocator.check_and_auto_relieve.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            DriveApiError(500, "backendError"),
            MalformedNodeError("storage quota is missing 'usage'"),
            AccountNotFoundError("b"),
        ],
    )
    def test_failed_relieve_does_not_block_upload(
        self,
        explorer: DriveExplorer,
        fake_drive: FakeDrive,
        allocator: MagicMock,
        error: Exception,
    ) -> None:
        allocator.check_and_auto_relieve.side_effect = error

        node = explorer.upload_file("p", "new.txt", "text/plain", b"abc")

        assert node.id in fake_drive.nodes["p"]
        assert fake_drive.contents[("p", node.id)] == b"abc"


# ---------------------------------------------------------------------------
# Storage summary
# ---------------------------------------------------------------------------


class TestStorageSummary:
    def test_aggregates_quotas_and_persists_them(
        self, explorer: DriveExplorer, account_store: InMemoryAccountStore
    ) -> None:
        summary = explorer.storage_summary()

        assert summary.total_bytes == 3000
        assert summary.used_bytes == 500
        assert summary.free_bytes == 2500
        assert summary.percent_used == 16.67
        assert {u.account_id: u.status for u in summary.accounts} == {
            "p": STATUS_OK,
            "b": STATUS_OK,
        }
        assert account_store.get("b").total_storage == 2000

    def test_unreachable_account_reported_and_excluded(
        self, explorer: DriveExplorer, fake_drive: FakeDrive
    ) -> None:
        fake_drive.fail("get_storage_quota", DriveApiError(500, "backendError"), node_id="b")

        summary = explorer.storage_summary()

        assert summary.total_bytes == 1000
        unavailable = next(u for u in summary.accounts if u.account_id == "b")
        assert unavailable.status == STATUS_UNAVAILABLE
        assert unavailable.free_bytes is None

    def test_inactive_accounts_skipped(
        self, explorer: DriveExplorer, account_store: InMemoryAccountStore
    ) -> None:
        account_store.save(make_account("gone", status=AccountStatus.EXPIRED))

        summary = explorer.storage_summary()

        assert "gone" not in {u.account_id for u in summary.accounts}
