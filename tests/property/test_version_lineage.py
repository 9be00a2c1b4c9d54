"""
Property: Version Lineage

For any interleaving of uploads and reverts against one document, the
document's current version SHALL equal the highest version number, version
numbers SHALL be unique and gap-free, every operation SHALL add exactly one
version, and a revert SHALL never modify the version it targets.
"""

import io
import tempfile
import uuid

from hypothesis import given, settings
from hypothesis import strategies as st

from docvault.storage import Database, LocalObjectStore
from docvault.storage.schema import ClassificationNodeRow
from docvault.versioning import VersionContent, VersionEngine

operation_strategy = st.one_of(
    st.tuples(st.just("upload"), st.binary(min_size=1, max_size=64)),
    st.tuples(st.just("revert"), st.integers(min_value=0, max_value=50)),
)


def build_engine(objects_dir: str) -> VersionEngine:
    database = Database("sqlite://")
    database.create_all()
    with database.session_scope() as session:
        session.add(ClassificationNodeRow(id="node-1", collection_id="c1", level=1, name="Root"))
    return VersionEngine(database, LocalObjectStore(objects_dir))


def stored_content(engine: VersionEngine, content: bytes) -> VersionContent:
    key = f"documents/c1/{uuid.uuid4()}.bin"
    engine.store.put(key, io.BytesIO(content))
    return VersionContent(
        object_key=key,
        file_name="data.bin",
        mime_type="application/octet-stream",
        file_size=len(content),
        created_by="user-1",
    )


class TestVersionLineage:
    """Version numbering under arbitrary upload and revert sequences."""

    @settings(max_examples=25, deadline=None)
    @given(
        first=st.binary(min_size=1, max_size=64),
        operations=st.lists(operation_strategy, min_size=1, max_size=8),
    )
    def test_lineage_is_dense_and_append_only(self, first, operations):
        with tempfile.TemporaryDirectory() as objects_dir:
            engine = build_engine(objects_dir)
            document = engine.create_document_with_first_version(
                "node-1", "Doc", stored_content(engine, first)
            )
            contents = {1: first}

            for kind, value in operations:
                before = engine.get_history(document.id)

                if kind == "upload":
                    document = engine.commit_new_version(document.id, stored_content(engine, value))
                    contents[document.current_version] = value
                else:
                    target = before[value % len(before)]
                    document = engine.revert(document.id, target.id, "user-2")
                    contents[document.current_version] = contents[target.version_number]
                    after_target = next(
                        v for v in engine.get_history(document.id) if v.id == target.id
                    )
                    assert after_target == target

                history = engine.get_history(document.id)
                numbers = [v.version_number for v in history]

                assert len(history) == len(before) + 1
                assert document.current_version == max(numbers)
                assert sorted(numbers) == list(range(1, len(history) + 1))
                assert len({v.object_key for v in history}) == len(history)

            _, stream = engine.open_download(document.id)
            assert stream.read() == contents[document.current_version]
            engine.database.dispose()
