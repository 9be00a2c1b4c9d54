"""Classification-tree lookups used to scope stored objects."""

from typing import Optional, Protocol

from docvault.core import get_logger
from docvault.storage.database import Database
from docvault.storage.schema import ClassificationNodeRow

logger = get_logger(__name__)


class ClassificationTree(Protocol):
    """Resolves a classification node to the collection that owns it."""

    def resolve_collection(self, node_id: str) -> Optional[str]:
        """Return the node's collection id, or None if the node is unknown."""
        ...


class SqlClassificationTree:
    """Classification tree read from the ``classification_nodes`` table."""

    def __init__(self, database: Database):
        self.database = database

    def resolve_collection(self, node_id: str) -> Optional[str]:
        with self.database.session_scope(write=False) as session:
            node = session.get(ClassificationNodeRow, node_id)
            return node.collection_id if node else None

    def register_node(
        self,
        node_id: str,
        collection_id: str,
        name: str = "",
        level: int = 1,
        parent_id: Optional[str] = None,
    ) -> None:
        """Insert a node. Used for seeding; tree management lives elsewhere."""
        if not 1 <= level <= 4:
            raise ValueError(f"level must be between 1 and 4, got {level}")
        with self.database.session_scope() as session:
            session.add(ClassificationNodeRow(
                id=node_id,
                collection_id=collection_id,
                parent_id=parent_id,
                level=level,
                name=name,
            ))
        logger.debug("classification_node_registered", node_id=node_id, collection_id=collection_id)
