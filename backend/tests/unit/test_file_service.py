"""
Unit Tests — File Store Service
════════════════════════════════
Tests for:
  • Ownership scoping     — every statement filters on the caller's user_id
  • Upload                — validation order, CDN folder, record fields
  • Folders               — creation, paths, parent checks
  • Rename / move / star / trash / restore
  • Permanent deletion    — CDN best effort, subtree purge, empty trash
  • Stats                 — byte formatting, counts
  • Chat lookup           — trashed → 404, folder → 400

The AsyncSession is a MagicMock; execute() results are queued per test with
scalars_result().
"""

from __future__ import annotations

import io
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from skyvault.processing.pipeline import DocumentReference
from skyvault.services.files import FileService, format_bytes
from skyvault.storage.imagekit import StorageError
from tests.conftest import TEST_USER_ID, scalars_result


def _upload(data: bytes, filename: str = "notes.txt", content_type: str = "text/plain") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def _error_code(exc_info) -> str:
    return exc_info.value.detail["error_code"]


@pytest.fixture
def service(mock_db, mock_storage) -> FileService:
    return FileService(db=mock_db, user_id=TEST_USER_ID, storage=mock_storage)


# ─────────────────────────────────────────────────────────────────────────────
# format_bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestFormatBytes:

    @pytest.mark.parametrize("size, expected", [
        (0, "0 KB"),
        (-5, "0 KB"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (5 * 1024 ** 3, "5 GB"),
        (3 * 1024 ** 4, "3 TB"),
        (2048 * 1024 ** 4, "2048 TB"),
    ])
    def test_formatting(self, size, expected):
        assert format_bytes(size) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Ownership scoping
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestOwnership:

    async def test_list_filters_by_caller(self, service, mock_db):
        await service.list_files()

        stmt = mock_db.execute.await_args.args[0]
        assert "files.user_id" in str(stmt)
        assert TEST_USER_ID in stmt.compile().params.values()

    async def test_missing_or_foreign_file_is_404(self, service, mock_db):
        mock_db.execute.return_value = scalars_result()
        with pytest.raises(HTTPException) as exc_info:
            await service.get_owned_file(uuid.uuid4())
        assert exc_info.value.status_code == 404
        assert _error_code(exc_info) == "FILE_NOT_FOUND"

    async def test_recents_exclude_folders_and_trash(self, service, mock_db, make_file):
        files = [make_file(name=f"f{i}.txt") for i in range(3)]
        mock_db.execute.return_value = scalars_result(*files)

        assert await service.recents(limit=3) == files

        sql = str(mock_db.execute.await_args.args[0])
        assert "files.is_folder IS" in sql
        assert "files.is_trashed IS" in sql
        assert "ORDER BY files.created_at DESC" in sql


# ─────────────────────────────────────────────────────────────────────────────
# Upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestUpload:

    async def test_upload_stores_under_user_folder(self, service, mock_db, mock_storage):
        record = await service.upload(_upload(b"hello world"))

        data, file_name, folder, content_type = mock_storage.upload.await_args.args
        assert data == b"hello world"
        assert file_name.endswith(".txt") and file_name != "notes.txt"
        assert folder == f"/skyvault/{TEST_USER_ID}"
        assert content_type == "text/plain"

        assert record.name == "notes.txt"
        assert record.user_id == TEST_USER_ID
        assert record.file_id_remote == "ik_uploaded_1"
        assert record.size == len(b"hello world")
        assert record.is_folder is False
        mock_db.add.assert_called_once_with(record)
        mock_db.flush.assert_awaited()

    async def test_upload_into_folder(self, service, mock_db, mock_storage, make_file):
        parent = make_file(name="Docs", is_folder=True)
        mock_db.execute.return_value = scalars_result(parent)

        record = await service.upload(_upload(b"%PDF", "a.pdf", "application/pdf"), parent.id)

        folder = mock_storage.upload.await_args.args[2]
        assert folder == f"/skyvault/{TEST_USER_ID}/folders/{parent.id}"
        assert record.parent_id == parent.id

    async def test_missing_file_is_400(self, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(None)
        assert exc_info.value.status_code == 400
        assert _error_code(exc_info) == "MISSING_FILE"

    async def test_empty_file_is_400(self, service, mock_storage):
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(_upload(b""))
        assert _error_code(exc_info) == "MISSING_FILE"
        mock_storage.upload.assert_not_called()

    async def test_unsupported_type_is_400(self, service, mock_storage):
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(_upload(b"PK", "a.zip", "application/zip"))
        assert exc_info.value.status_code == 400
        assert _error_code(exc_info) == "UNSUPPORTED_FILE_TYPE"
        mock_storage.upload.assert_not_called()

    async def test_unknown_parent_is_404(self, service, mock_db, mock_storage):
        mock_db.execute.return_value = scalars_result()
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(_upload(b"x"), uuid.uuid4())
        assert _error_code(exc_info) == "FOLDER_NOT_FOUND"
        mock_storage.upload.assert_not_called()

    async def test_oversized_file_is_413(self, service, mock_storage):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("skyvault.services.files.MAX_UPLOAD_BYTES", 4)
            with pytest.raises(HTTPException) as exc_info:
                await service.upload(_upload(b"12345"))
        assert exc_info.value.status_code == 413
        mock_storage.upload.assert_not_called()

    async def test_unconfigured_storage_is_503(self, service, mock_storage):
        mock_storage.is_configured = False
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(_upload(b"x"))
        assert exc_info.value.status_code == 503

    async def test_cdn_failure_is_502_and_no_record(self, service, mock_db, mock_storage):
        mock_storage.upload.side_effect = StorageError("Upload rejected with status 500")
        with pytest.raises(HTTPException) as exc_info:
            await service.upload(_upload(b"x"))
        assert exc_info.value.status_code == 502
        mock_db.add.assert_not_called()


# ─────────────────────────────────────────────────────────────────────────────
# Folders
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestFolders:

    async def test_create_root_folder(self, service, mock_db):
        folder = await service.create_folder("  Invoices  ")

        assert folder.name == "Invoices"
        assert folder.path == "/Invoices"
        assert folder.is_folder is True
        assert folder.type == "folder"
        assert folder.parent_id is None
        mock_db.add.assert_called_once_with(folder)

    async def test_create_nested_folder(self, service, mock_db, make_file):
        parent = make_file(name="Docs", is_folder=True, path="/Docs")
        mock_db.execute.return_value = scalars_result(parent)

        folder = await service.create_folder("2026", parent.id)

        assert folder.path == "/Docs/2026"
        assert folder.parent_id == parent.id

    async def test_blank_name_is_400(self, service, mock_db):
        with pytest.raises(HTTPException) as exc_info:
            await service.create_folder("   ")
        assert _error_code(exc_info) == "INVALID_NAME"
        mock_db.execute.assert_not_called()


# ─────────────────────────────────────────────────────────────────────────────
# Updates
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestUpdates:

    async def test_rename(self, service, mock_db, make_file):
        file = make_file()
        mock_db.execute.return_value = scalars_result(file)

        renamed = await service.rename(file.id, "  report.txt ")

        assert renamed.name == "report.txt"
        assert renamed.updated_at > make_file().created_at

    async def test_rename_blank_is_400_before_lookup(self, service, mock_db):
        with pytest.raises(HTTPException):
            await service.rename(uuid.uuid4(), "")
        mock_db.execute.assert_not_called()

    async def test_move_into_folder(self, service, mock_db, make_file):
        file = make_file()
        folder = make_file(name="Docs", is_folder=True)
        mock_db.execute.side_effect = [scalars_result(file), scalars_result(folder)]

        moved, destination = await service.move(file.id, folder.id)

        assert moved.parent_id == folder.id
        assert destination is folder

    async def test_move_to_root(self, service, mock_db, make_file):
        file = make_file(parent_id=uuid.uuid4())
        mock_db.execute.return_value = scalars_result(file)

        moved, destination = await service.move(file.id, None)

        assert moved.parent_id is None
        assert destination is None

    async def test_move_into_itself_is_400(self, service, mock_db):
        file_id = uuid.uuid4()
        with pytest.raises(HTTPException) as exc_info:
            await service.move(file_id, file_id)
        assert _error_code(exc_info) == "INVALID_MOVE"
        mock_db.execute.assert_not_called()

    async def test_move_folder_into_its_child_is_400(self, service, mock_db, make_file):
        parent = make_file(name="A", is_folder=True)
        child = make_file(name="B", is_folder=True, parent_id=parent.id)
        mock_db.execute.side_effect = [scalars_result(parent), scalars_result(child)]

        with pytest.raises(HTTPException) as exc_info:
            await service.move(parent.id, child.id)

        assert exc_info.value.status_code == 400
        assert _error_code(exc_info) == "INVALID_MOVE"
        assert parent.parent_id is None
        mock_db.flush.assert_not_called()

    async def test_move_folder_into_its_grandchild_is_400(self, service, mock_db, make_file):
        top = make_file(name="A", is_folder=True)
        middle = make_file(name="B", is_folder=True, parent_id=top.id)
        bottom = make_file(name="C", is_folder=True, parent_id=middle.id)
        mock_db.execute.side_effect = [
            scalars_result(top),     # item being moved
            scalars_result(bottom),  # destination
            scalars_result(middle),  # destination's parent
        ]

        with pytest.raises(HTTPException) as exc_info:
            await service.move(top.id, bottom.id)

        assert _error_code(exc_info) == "INVALID_MOVE"
        assert top.parent_id is None

    async def test_move_folder_into_unrelated_subfolder(self, service, mock_db, make_file):
        docs = make_file(name="Docs", is_folder=True)
        sub = make_file(name="Sub", is_folder=True, parent_id=docs.id)
        other = make_file(name="Other", is_folder=True)
        mock_db.execute.side_effect = [
            scalars_result(other),
            scalars_result(sub),
            scalars_result(docs),
        ]

        moved, destination = await service.move(other.id, sub.id)

        assert moved.parent_id == sub.id
        assert destination is sub

    async def test_move_to_missing_folder_is_404(self, service, mock_db, make_file):
        file = make_file()
        mock_db.execute.side_effect = [scalars_result(file), scalars_result()]
        with pytest.raises(HTTPException) as exc_info:
            await service.move(file.id, uuid.uuid4())
        assert _error_code(exc_info) == "FOLDER_NOT_FOUND"
        assert file.parent_id is None

    async def test_toggle_star_twice(self, service, mock_db, make_file):
        file = make_file()
        mock_db.execute.return_value = scalars_result(file)

        assert (await service.toggle_star(file.id)).is_starred is True
        assert (await service.toggle_star(file.id)).is_starred is False

    async def test_toggle_trash(self, service, mock_db, make_file):
        file = make_file()
        mock_db.execute.return_value = scalars_result(file)
        assert (await service.toggle_trash(file.id)).is_trashed is True

    async def test_restore_trashed(self, service, mock_db, make_file):
        file = make_file(is_trashed=True)
        mock_db.execute.return_value = scalars_result(file)
        assert (await service.restore(file.id)).is_trashed is False

    async def test_restore_untrashed_is_404(self, service, mock_db):
        mock_db.execute.return_value = scalars_result()
        with pytest.raises(HTTPException) as exc_info:
            await service.restore(uuid.uuid4())
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail["message"] == "Trashed file not found"


# ─────────────────────────────────────────────────────────────────────────────
# Permanent deletion
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestDelete:

    async def test_delete_file_removes_cdn_object_and_record(
        self, service, mock_db, mock_storage, make_file
    ):
        file = make_file()
        mock_db.execute.return_value = scalars_result(file)

        await service.delete(file.id)

        mock_storage.delete.assert_awaited_once_with("ik_file_123")
        mock_db.delete.assert_awaited_once_with(file)

    async def test_cdn_failure_still_removes_record(
        self, service, mock_db, mock_storage, make_file
    ):
        file = make_file()
        mock_db.execute.return_value = scalars_result(file)
        mock_storage.delete.side_effect = StorageError("Delete rejected with status 500")

        await service.delete(file.id)

        mock_db.delete.assert_awaited_once_with(file)

    async def test_delete_folder_purges_subtree(self, service, mock_db, mock_storage, make_file):
        root = make_file(name="Docs", is_folder=True)
        child_file = make_file(name="a.txt", parent_id=root.id, file_id_remote="ik_a")
        child_folder = make_file(name="Sub", is_folder=True, parent_id=root.id)
        grandchild = make_file(name="b.txt", parent_id=child_folder.id, file_id_remote="ik_b")

        mock_db.execute.side_effect = [
            scalars_result(root),                      # get_owned_file
            scalars_result(child_file, child_folder),  # children of root
            scalars_result(grandchild),                # children of Sub
        ]

        await service.delete(root.id)

        deleted = [c.args[0] for c in mock_db.delete.await_args_list]
        assert deleted == [root, child_file, child_folder, grandchild]
        remote_ids = [c.args[0] for c in mock_storage.delete.await_args_list]
        assert remote_ids == ["ik_a", "ik_b"]

    async def test_delete_survives_parent_cycle(self, service, mock_db, make_file):
        a = make_file(name="A", is_folder=True)
        b = make_file(name="B", is_folder=True, parent_id=a.id)
        a.parent_id = b.id
        mock_db.execute.side_effect = [
            scalars_result(a),  # get_owned_file
            scalars_result(b),  # children of A
            scalars_result(a),  # children of B loop back to A
        ]

        await service.delete(a.id)

        deleted = [c.args[0] for c in mock_db.delete.await_args_list]
        assert deleted == [a, b]

    async def test_empty_trash_skips_items_inside_trashed_folder(
        self, service, mock_db, mock_storage, make_file
    ):
        folder = make_file(name="Old", is_folder=True, is_trashed=True)
        inner = make_file(name="a.txt", parent_id=folder.id, is_trashed=True, file_id_remote="ik_a")
        mock_db.execute.side_effect = [
            scalars_result(folder, inner),  # trashed items
            scalars_result(inner),          # children of Old
        ]

        assert await service.empty_trash() == 1

        deleted = [c.args[0] for c in mock_db.delete.await_args_list]
        assert deleted == [folder, inner]
        mock_storage.delete.assert_awaited_once_with("ik_a")

    async def test_empty_trash_counts_top_level_items(self, service, mock_db, make_file):
        trashed = [make_file(is_trashed=True), make_file(is_trashed=True)]
        mock_db.execute.return_value = scalars_result(*trashed)

        assert await service.empty_trash() == 2
        assert mock_db.delete.await_count == 2


# ─────────────────────────────────────────────────────────────────────────────
# Stats
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestStats:

    async def test_stats_ignore_folders(self, service, mock_db):
        folder_id = uuid.uuid4()
        result = MagicMock()
        result.all.return_value = [
            SimpleNamespace(size=1024, is_folder=False, parent_id=None),
            SimpleNamespace(size=512, is_folder=False, parent_id=folder_id),
            SimpleNamespace(size=0, is_folder=True, parent_id=None),
        ]
        mock_db.execute.return_value = result

        stats = await service.stats()

        assert stats.file_count == 2
        assert stats.total_bytes == 1536
        assert stats.total_storage == "1.5 KB"
        assert stats.shared_count == 1

    async def test_empty_drive(self, service, mock_db):
        result = MagicMock()
        result.all.return_value = []
        mock_db.execute.return_value = result

        stats = await service.stats()
        assert stats.file_count == 0
        assert stats.total_storage == "0 KB"


# ─────────────────────────────────────────────────────────────────────────────
# Chat lookup
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.files
class TestChatDocument:

    async def test_returns_document_reference(self, service, mock_db, make_file):
        file = make_file(name="scan.pdf", type="application/pdf", file_url="https://cdn/x.pdf")
        mock_db.execute.return_value = scalars_result(file)

        document = await service.get_chat_document(file.id)

        assert document == DocumentReference(
            remote_url="https://cdn/x.pdf", media_type="application/pdf", display_name="scan.pdf"
        )

    async def test_trashed_or_missing_is_404(self, service, mock_db):
        mock_db.execute.return_value = scalars_result()
        with pytest.raises(HTTPException) as exc_info:
            await service.get_chat_document(uuid.uuid4())
        assert exc_info.value.status_code == 404

    async def test_folder_is_400(self, service, mock_db, make_file):
        folder = make_file(is_folder=True)
        mock_db.execute.return_value = scalars_result(folder)
        with pytest.raises(HTTPException) as exc_info:
            await service.get_chat_document(folder.id)
        assert exc_info.value.status_code == 400
        assert _error_code(exc_info) == "IS_FOLDER"
