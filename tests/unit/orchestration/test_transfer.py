"""Unit tests for orchestration/transfer.py — single and batch moves."""

from unittest.mock import MagicMock

import pytest
from drive_fakes import FakeDrive, InMemoryAccountStore, make_account

from drive_aggregator.accounts.credentials import CredentialError
from drive_aggregator.accounts.models import AccountRole
from drive_aggregator.drive.client import DriveApiError
from drive_aggregator.drive.paths import PathRecreator
from drive_aggregator.orchestration.transfer import (
    NamingConflictError,
    TransferError,
    TransferOrchestrator,
    has_name_conflict,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def drive(fake_drive: FakeDrive) -> FakeDrive:
    fake_drive.add_account("src")
    fake_drive.add_account("dst")
    return fake_drive


@pytest.fixture
def credentials() -> MagicMock:
    provider = MagicMock()
    provider.ensure_valid_token.side_effect = lambda account_id: f"token-{account_id}"
    return provider


@pytest.fixture
def file_cache() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(
    drive: FakeDrive,
    credentials: MagicMock,
    account_store: InMemoryAccountStore,
    file_cache: MagicMock,
) -> TransferOrchestrator:
    account_store.save(make_account("src", role=AccountRole.PRIMARY, email="owner@example.com"))
    account_store.save(make_account("dst"))
    return TransferOrchestrator(
        drive_client=drive,  # type: ignore[arg-type]
        credentials=credentials,
        path_recreator=PathRecreator(drive),  # type: ignore[arg-type]
        account_store=account_store,  # type: ignore[arg-type]
        file_cache=file_cache,
    )


# ---------------------------------------------------------------------------
# has_name_conflict
# ---------------------------------------------------------------------------


class TestHasNameConflict:
    def test_ignores_case(self) -> None:
        assert has_name_conflict(["Report.PDF", "other"], "report.pdf")

    def test_no_match(self) -> None:
        assert not has_name_conflict(["report.pdf"], "report.pdf.bak")


# ---------------------------------------------------------------------------
# move_file
# ---------------------------------------------------------------------------


class TestMoveFile:
    def test_moves_bytes_and_deletes_source(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        target = drive.add_folder("dst", "Inbox")
        file = drive.add_file("src", "notes.txt", content=b"hello")

        moved = orchestrator.move_file(file.id, "src", "dst", target.id)

        assert moved.name == "notes.txt"
        assert moved.parent_id == target.id
        assert drive.contents[("dst", moved.id)] == b"hello"
        assert file.id not in drive.nodes["src"]
        assert [m[0] for m in drive.mutations] == ["upload", "delete"]

    def test_moved_source_leaves_cached_listing(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator, file_cache: MagicMock
    ) -> None:
        file = drive.add_file("src", "notes.txt")

        orchestrator.move_file(file.id, "src", "dst", drive.roots["dst"])

        file_cache.mark_deleted.assert_called_once_with("src", file.id)

    def test_cache_failure_does_not_fail_the_move(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator, file_cache: MagicMock
    ) -> None:
        file = drive.add_file("src", "notes.txt")
        file_cache.mark_deleted.side_effect = RuntimeError("blob storage unavailable")

        moved = orchestrator.move_file(file.id, "src", "dst", drive.roots["dst"])

        assert moved.id in drive.nodes["dst"]
        assert file.id not in drive.nodes["src"]

    def test_maintain_path_recreates_source_folders(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        docs = drive.add_folder("src", "Docs")
        file = drive.add_file("src", "cv.pdf", parent_id=docs.id, mime_type="application/pdf")
        target_root = drive.add_folder("dst", "R")

        moved = orchestrator.move_file(file.id, "src", "dst", target_root.id, maintain_path=True)

        assert drive.path_of("dst", moved.id) == ["R", "Docs", "cv.pdf"]

    def test_maintain_path_reuses_existing_folder(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        docs = drive.add_folder("src", "Docs")
        first = drive.add_file("src", "a.txt", parent_id=docs.id)
        second = drive.add_file("src", "b.txt", parent_id=docs.id)
        target_root = drive.add_folder("dst", "R")

        moved_a = orchestrator.move_file(first.id, "src", "dst", target_root.id, maintain_path=True)
        moved_b = orchestrator.move_file(
            second.id, "src", "dst", target_root.id, maintain_path=True
        )

        assert moved_a.parent_id == moved_b.parent_id
        assert len([m for m in drive.mutations if m[0] == "create_folder"]) == 1

    def test_name_collision_aborts_without_mutations(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        target = drive.add_folder("dst", "Inbox")
        drive.add_file("dst", "REPORT.pdf", parent_id=target.id)
        file = drive.add_file("src", "report.pdf")

        with pytest.raises(NamingConflictError) as exc_info:
            orchestrator.move_file(file.id, "src", "dst", target.id)

        assert exc_info.value.folder_id == target.id
        assert drive.mutations == []
        assert file.id in drive.nodes["src"]

    def test_folder_cannot_be_moved(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        folder = drive.add_folder("src", "Docs")

        with pytest.raises(TransferError, match="folder"):
            orchestrator.move_file(folder.id, "src", "dst", drive.roots["dst"])
        assert drive.mutations == []

    def test_credential_failure_happens_before_any_drive_call(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator, credentials: MagicMock
    ) -> None:
        file = drive.add_file("src", "notes.txt")
        credentials.ensure_valid_token.side_effect = CredentialError("dst", "revoked")

        with pytest.raises(CredentialError):
            orchestrator.move_file(file.id, "src", "dst", drive.roots["dst"])
        assert drive.calls == []

    def test_upload_failure_keeps_source(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        file = drive.add_file("src", "notes.txt")
        drive.fail("upload", DriveApiError(403, "storageQuotaExceeded"))

        with pytest.raises(DriveApiError):
            orchestrator.move_file(file.id, "src", "dst", drive.roots["dst"])
        assert file.id in drive.nodes["src"]
        assert drive.mutations == []

    def test_delete_failure_leaves_copies_in_both_accounts(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        file = drive.add_file("src", "notes.txt")
        drive.fail("delete", DriveApiError(500, "backendError"), node_id=file.id)

        with pytest.raises(DriveApiError):
            orchestrator.move_file(file.id, "src", "dst", drive.roots["dst"])
        assert file.id in drive.nodes["src"]
        assert [n.name for n in drive.children("dst", drive.roots["dst"])] == ["notes.txt"]

    def test_media_keeps_capture_metadata(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        photo = drive.add_file(
            "src",
            "IMG_0001.jpg",
            mime_type="image/jpeg",
            created_time="2019-07-04T18:30:00.000Z",
            modified_time="2019-07-05T09:00:00.000Z",
            description="fireworks",
        )

        moved = orchestrator.move_file(photo.id, "src", "dst", drive.roots["dst"])

        assert moved.created_time == "2019-07-04T18:30:00.000Z"
        assert moved.modified_time == "2019-07-05T09:00:00.000Z"
        assert moved.description == "fireworks"

    def test_documents_do_not_carry_timestamps(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        doc = drive.add_file("src", "a.txt", created_time="2019-07-04T18:30:00.000Z")

        moved = orchestrator.move_file(doc.id, "src", "dst", drive.roots["dst"])

        assert moved.created_time == ""

    def test_move_photo_shares_with_source_owner(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        photo = drive.add_file("src", "IMG_0002.jpg", mime_type="image/jpeg")

        moved = orchestrator.move_photo(photo.id, "src", "dst", drive.roots["dst"])

        grants = drive.permissions[("dst", moved.id)]
        assert [(g.role, g.email_address) for g in grants] == [("reader", "owner@example.com")]
        operations = [m[0] for m in drive.mutations]
        assert operations == ["upload", "create_permission", "delete"]


# ---------------------------------------------------------------------------
# move_files_in_batch
# ---------------------------------------------------------------------------


class TestMoveFilesInBatch:
    def test_failing_file_does_not_stop_batch(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        files = [drive.add_file("src", f"f{i}.txt") for i in range(4)]
        drive.fail("download", DriveApiError(500, "backendError"), node_id=files[1].id)
        progress: list[tuple[int, int]] = []

        result = orchestrator.move_files_in_batch(
            [f.id for f in files],
            "src",
            "dst",
            drive.roots["dst"],
            on_progress=lambda done, total: progress.append((done, total)),
        )

        assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]
        assert result.total == 4
        assert result.moved == [files[0].id, files[2].id, files[3].id]
        assert list(result.failures) == [files[1].id]
        assert "backendError" in result.failures[files[1].id]
        assert result.has_failures
        assert files[1].id in drive.nodes["src"]

    def test_empty_batch(self, orchestrator: TransferOrchestrator) -> None:
        progress: list[tuple[int, int]] = []

        result = orchestrator.move_files_in_batch(
            [], "src", "dst", "anywhere", on_progress=lambda d, t: progress.append((d, t))
        )

        assert result.total == 0
        assert not result.has_failures
        assert progress == []

    def test_maintains_paths_by_default(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        docs = drive.add_folder("src", "Docs")
        file = drive.add_file("src", "a.txt", parent_id=docs.id)
        target_root = drive.add_folder("dst", "R")

        result = orchestrator.move_files_in_batch([file.id], "src", "dst", target_root.id)

        assert result.moved == [file.id]
        uploaded = next(m for m in drive.mutations if m[0] == "upload")
        assert drive.path_of("dst", uploaded[2]) == ["R", "Docs", "a.txt"]

    def test_collisions_reported_per_file(
        self, drive: FakeDrive, orchestrator: TransferOrchestrator
    ) -> None:
        drive.add_file("dst", "dup.txt")
        dup = drive.add_file("src", "dup.txt")
        fresh = drive.add_file("src", "fresh.txt")

        result = orchestrator.move_files_in_batch(
            [dup.id, fresh.id], "src", "dst", drive.roots["dst"], maintain_path=False
        )

        assert result.moved == [fresh.id]
        assert "already exists" in result.failures[dup.id]
