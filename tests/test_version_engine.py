"""Tests for the version/revert engine."""

import io
import threading
import uuid
from unittest.mock import MagicMock

import pytest

from docvault.core.errors import (
    NotFoundError,
    ObjectNotFoundError,
    StorageError,
    TransactionError,
)
from docvault.core.resilience import RetryConfig
from docvault.storage.repository import DocumentRepository
from docvault.versioning import VersionContent, VersionEngine


def lineage_is_consistent(engine, document_id) -> bool:
    history = engine.get_history(document_id)
    document = engine.get_document(document_id)
    numbers = [v.version_number for v in history]
    return (
        document.current_version == max(numbers)
        and len(numbers) == len(set(numbers))
        and numbers == sorted(numbers, reverse=True)
    )


class TestCommits:
    """Tests for creating documents and committing versions."""

    def test_first_version(self, context, seed_document):
        document = seed_document(b"first")

        assert document.current_version == 1
        assert document.node_id == "node-1"
        assert document.updated_by == "user-1"
        assert document.latest_version.version_number == 1
        assert document.created_at.tzinfo is not None

    def test_first_version_needs_existing_node(self, context):
        with pytest.raises(NotFoundError) as exc_info:
            context.engine.create_document_with_first_version(
                node_id="node-404",
                title="Orphan",
                content=VersionContent("k", "a.txt", "text/plain", 1),
            )
        assert exc_info.value.resource == "node"

    def test_new_version_increments_counter(self, context, seed_document, add_version):
        document = seed_document()

        updated = add_version(document.id, b"second", changelog="Fixed typo")

        assert updated.current_version == 2
        assert updated.updated_by == "user-2"
        assert updated.latest_version.changelog == "Fixed typo"
        assert updated.updated_at >= document.updated_at
        assert lineage_is_consistent(context.engine, document.id)

    def test_new_version_of_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.commit_new_version(
                "missing", VersionContent("k", "a.txt", "text/plain", 1)
            )

    def test_new_version_keeps_title_unless_given(self, context, seed_document):
        document = seed_document(title="Quality Manual")

        updated = context.engine.commit_new_version(
            document.id, VersionContent("k2", "a.txt", "text/plain", 1)
        )
        assert updated.title == "Quality Manual"

        renamed = context.engine.commit_new_version(
            document.id, VersionContent("k3", "a.txt", "text/plain", 1, title="QM v3")
        )
        assert renamed.title == "QM v3"
        assert renamed.latest_version.title == "QM v3"

    def test_lost_race_is_retried(self, context, seed_document, monkeypatch):
        document = seed_document()
        engine = VersionEngine(
            context.database,
            context.store,
            retry_config=RetryConfig(
                max_retries=3, base_delay=0, jitter=False, retryable_exceptions=(TransactionError,)
            ),
        )
        real_advance = DocumentRepository.advance_current_version
        outcomes = iter([False])

        def advance(self, *args, **kwargs):
            if next(outcomes, True) is False:
                return False
            return real_advance(self, *args, **kwargs)

        monkeypatch.setattr(DocumentRepository, "advance_current_version", advance)

        updated = engine.commit_new_version(
            document.id, VersionContent("k2", "a.txt", "text/plain", 1)
        )

        assert updated.current_version == 2
        assert [v.version_number for v in engine.get_history(document.id)] == [2, 1]

    def test_exhausted_race_retries_raise_transaction_error(
        self, context, seed_document, monkeypatch
    ):
        document = seed_document()
        engine = VersionEngine(
            context.database,
            context.store,
            retry_config=RetryConfig(
                max_retries=2, base_delay=0, jitter=False, retryable_exceptions=(TransactionError,)
            ),
        )
        monkeypatch.setattr(
            DocumentRepository, "advance_current_version", lambda self, *a, **kw: False
        )

        with pytest.raises(TransactionError):
            engine.commit_new_version(document.id, VersionContent("k2", "a.txt", "text/plain", 1))

        monkeypatch.undo()
        assert context.engine.get_document(document.id).current_version == 1
        assert len(context.engine.get_history(document.id)) == 1


class TestConcurrency:
    """Tests for concurrent writers on one document."""

    def test_concurrent_commits_never_share_a_version_number(self, context, seed_document):
        document = seed_document()
        errors = []
        barrier = threading.Barrier(8)

        def commit(i):
            try:
                barrier.wait()
                context.engine.commit_new_version(
                    document.id,
                    VersionContent(f"documents/collection-1/{i}.txt", "a.txt", "text/plain", 1),
                )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=commit, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        history = context.engine.get_history(document.id)
        assert [v.version_number for v in history] == list(range(9, 0, -1))
        assert context.engine.get_document(document.id).current_version == 9

    def test_concurrent_reverts_and_uploads(self, context, seed_document, add_version):
        document = seed_document(b"v1")
        target = context.engine.get_history(document.id)[0]
        errors = []

        def revert():
            try:
                context.engine.revert(document.id, target.id, "user-3")
            except Exception as e:
                errors.append(e)

        def upload(i):
            try:
                add_version(document.id, f"v{i}".encode())
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=revert) for _ in range(3)]
        threads += [threading.Thread(target=upload, args=(i,)) for i in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert context.engine.get_document(document.id).current_version == 7
        assert lineage_is_consistent(context.engine, document.id)


class TestHistory:
    """Tests for get_history and get_document."""

    def test_history_newest_first(self, context, seed_document, add_version):
        document = seed_document()
        add_version(document.id, b"2")
        add_version(document.id, b"3")

        history = context.engine.get_history(document.id)

        assert [v.version_number for v in history] == [3, 2, 1]
        assert all(v.document_id == document.id for v in history)

    def test_history_of_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.get_history("missing")

    def test_get_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.get_document("missing")


class TestListDocuments:
    """Tests for list_documents."""

    def test_lists_node_documents_recently_updated_first(
        self, context, seed_document, add_version
    ):
        manual = seed_document(title="Quality Manual")
        policy = seed_document(title="Policy")
        add_version(manual.id, b"manual v2")

        documents = context.engine.list_documents("node-1")

        assert [d.id for d in documents] == [manual.id, policy.id]
        assert documents[0].current_version == 2
        assert documents[0].latest_version.version_number == 2
        assert documents[0].latest_version.file_size == len(b"manual v2")
        assert documents[1].latest_version.version_number == 1

    def test_other_nodes_are_excluded(self, context, seed_document):
        context.tree.register_node("node-2", "collection-2")
        seed_document()

        assert context.engine.list_documents("node-2") == []

    def test_unknown_node(self, context):
        with pytest.raises(NotFoundError) as exc_info:
            context.engine.list_documents("node-404")

        assert exc_info.value.resource == "node"


class TestRevert:
    """Tests for revert."""

    def test_revert_scenario(self, context, seed_document, add_version):
        document = seed_document(b"original content")
        add_version(document.id, b"fixed content", changelog="Fixed typo")
        v1 = context.engine.get_history(document.id)[-1]

        reverted = context.engine.revert(document.id, v1.id, "user-9")

        assert reverted.current_version == 3
        assert reverted.updated_by == "user-9"
        history = context.engine.get_history(document.id)
        assert [v.version_number for v in history] == [3, 2, 1]
        v3 = history[0]
        assert v3.changelog == "Reverted to version 1"
        assert v3.created_by == "user-9"
        assert v3.object_key != v1.object_key
        assert v3.object_key.startswith("documents/collection-1/revert_")
        assert v3.object_key.endswith(".txt")
        assert v3.file_name == v1.file_name
        assert v3.file_size == v1.file_size
        assert context.store.get_stream(v3.object_key).read() == b"original content"
        assert reverted.latest_version.id == v3.id

    def test_revert_leaves_target_untouched(self, context, seed_document, add_version):
        document = seed_document(b"original")
        add_version(document.id, b"newer")
        v1 = context.engine.get_history(document.id)[-1]

        context.engine.revert(document.id, v1.id, "user-9")

        v1_after = context.engine.get_history(document.id)[-1]
        assert v1_after == v1
        assert context.store.get_stream(v1.object_key).read() == b"original"

    def test_revert_to_current_version_creates_new_version(self, context, seed_document):
        document = seed_document()
        current = context.engine.get_history(document.id)[0]

        reverted = context.engine.revert(document.id, current.id, "user-1")

        assert reverted.current_version == 2
        assert len(context.engine.get_history(document.id)) == 2

    def test_revert_restores_title(self, context, seed_document):
        document = seed_document(title="Original Title")
        context.engine.commit_new_version(
            document.id,
            VersionContent(document.latest_version.object_key, "a.txt", "text/plain", 1, title="New"),
        )

        reverted = context.engine.revert(document.id, document.latest_version.id, "user-1")

        assert reverted.title == "Original Title"

    def test_revert_unknown_version(self, context, seed_document):
        document = seed_document()

        with pytest.raises(NotFoundError) as exc_info:
            context.engine.revert(document.id, "no-such-version", "user-1")

        assert exc_info.value.resource == "version"

    def test_revert_to_other_documents_version_is_not_found(self, context, seed_document):
        mine = seed_document(b"mine")
        theirs = seed_document(b"theirs")

        with pytest.raises(NotFoundError):
            context.engine.revert(mine.id, theirs.latest_version.id, "user-1")

        assert context.engine.get_document(mine.id).current_version == 1

    def test_revert_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.revert("missing", "v", "user-1")

    def test_revert_with_missing_object(self, context, seed_document):
        document = seed_document()
        context.store.delete(document.latest_version.object_key)

        with pytest.raises(ObjectNotFoundError):
            context.engine.revert(document.id, document.latest_version.id, "user-1")

        assert len(context.engine.get_history(document.id)) == 1

    def test_failed_commit_discards_copied_object(self, context, seed_document, monkeypatch):
        document = seed_document()
        copies = []
        real_copy = context.store.copy

        def record_copy(src, dest):
            copies.append(dest)
            real_copy(src, dest)

        monkeypatch.setattr(context.store, "copy", record_copy)
        monkeypatch.setattr(
            context.engine, "_commit_once", MagicMock(side_effect=RuntimeError("db gone"))
        )

        with pytest.raises(RuntimeError):
            context.engine.revert(document.id, document.latest_version.id, "user-1")

        assert len(copies) == 1
        assert not context.store.exists(copies[0])


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_metadata_and_objects(self, context, seed_document, add_version):
        document = seed_document()
        add_version(document.id, b"2")
        keys = [v.object_key for v in context.engine.get_history(document.id)]

        assert context.engine.delete(document.id) == document.id

        with pytest.raises(NotFoundError):
            context.engine.get_document(document.id)
        assert not any(context.store.exists(k) for k in keys)
        with context.database.session_scope() as session:
            assert DocumentRepository(session).list_versions(document.id) == []

    def test_delete_tolerates_missing_objects(self, context, seed_document):
        document = seed_document()
        context.store.delete(document.latest_version.object_key)

        context.engine.delete(document.id)

        with pytest.raises(NotFoundError):
            context.engine.get_document(document.id)

    def test_delete_swallows_storage_errors(self, context, seed_document, monkeypatch):
        document = seed_document()
        monkeypatch.setattr(
            context.store, "delete", MagicMock(side_effect=StorageError("backend down"))
        )

        context.engine.delete(document.id)

        with pytest.raises(NotFoundError):
            context.engine.get_document(document.id)

    def test_delete_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.delete("missing")

    def test_delete_leaves_other_documents_alone(self, context, seed_document):
        keep = seed_document(b"keep")
        drop = seed_document(b"drop")

        context.engine.delete(drop.id)

        assert context.engine.get_document(keep.id).current_version == 1
        assert context.store.get_stream(keep.latest_version.object_key).read() == b"keep"


class TestDownload:
    """Tests for open_download."""

    def test_download_latest_version(self, context, seed_document, add_version):
        document = seed_document(b"one")
        add_version(document.id, b"two")

        info, stream = context.engine.open_download(document.id)

        assert info.version_number == 2
        assert info.file_name == "manual.txt"
        assert info.mime_type == "text/plain"
        assert stream.read() == b"two"
        assert stream.closed

    def test_download_round_trip_large_content(self, context):
        content = uuid.uuid4().bytes * 50_000
        key = "documents/collection-1/big.bin"
        context.store.put(key, io.BytesIO(content))
        document = context.engine.create_document_with_first_version(
            node_id="node-1",
            title="Big",
            content=VersionContent(key, "big.bin", "application/zip", len(content)),
        )

        info, stream = context.engine.open_download(document.id)

        assert info.file_size == len(content)
        assert stream.read() == content

    def test_download_missing_object_is_not_found(self, context, seed_document):
        document = seed_document()
        context.store.delete(document.latest_version.object_key)

        with pytest.raises(NotFoundError):
            context.engine.open_download(document.id)

    def test_download_missing_document(self, context):
        with pytest.raises(NotFoundError):
            context.engine.open_download("missing")
