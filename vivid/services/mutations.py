"""
Mutation submitter appending new records to user-scoped collections.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..models.core import ProjectType
from ..utils.firestore_client import FirestoreError
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .record_mapping import MEMORIES, PROJECTS, new_memory_fields, new_project_fields, placeholder_media
from .session import Session

logger = get_logger(__name__)

NOT_READY_MESSAGE = 'Error: user not authenticated or database not ready.'


class MutationStatus(str, Enum):
    """Outcome of a submitted mutation."""
    WRITTEN = 'written'
    NOT_READY = 'not_ready'
    FAILED = 'failed'


@dataclass
class MutationResult:
    """Typed outcome returned to the caller instead of a raised fault."""
    status: MutationStatus
    document_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is MutationStatus.WRITTEN


class MutationSubmitter:
    """Appends records for the session's user; never retries or queues a failed write.

    The caller's live subscription, not this class, observes the new document.
    """

    def __init__(self, session: Session, on_not_ready: Optional[Callable[[str], Any]] = None):
        """
        Initialize the submitter for one session.

        Args:
            session: Store handle and identity to write with
            on_not_ready: Blocking notification shown when the session is not ready
        """
        self.session = session
        self.on_not_ready = on_not_ready

    def submit(self, collection: str, fields: Dict[str, Any]) -> MutationResult:
        """
        Append a document with placeholder media and the server-side creation time.

        Args:
            collection: Collection name ('memories' or 'projects')
            fields: Type-specific fields; placeholder media URLs fill any left unset

        Returns:
            MutationResult describing what happened
        """
        if not self.session.ready:
            logger.warning(f'Refusing to write to {collection}: store or identity unavailable')
            if self.on_not_ready is not None:
                self.on_not_ready(NOT_READY_MESSAGE)
            return MutationResult(status=MutationStatus.NOT_READY, error=NOT_READY_MESSAGE)

        store = self.session.store
        try:
            path = self.session.collection_path(collection)
            document = placeholder_media(collection)
            for key, value in fields.items():
                if key == 'id' or (value is None and key in document):
                    continue
                document[key] = value
            document['createdAt'] = store.server_timestamp()
            document_id = store.add_document(path, document)
        except (FirestoreError, ValueError) as e:
            logger.error(f'Error adding document to {collection}: {e}')
            return MutationResult(status=MutationStatus.FAILED, error=str(e))

        logger.info(f'Added {collection} document {document_id}')
        return MutationResult(status=MutationStatus.WRITTEN, document_id=document_id)

    def add_memory(self, existing_count: int = 0) -> MutationResult:
        """Upload a placeholder memory numbered after the ones already shown."""
        return self.submit(MEMORIES, new_memory_fields(existing_count, utc_now()))

    def start_project(self, project_type: ProjectType = ProjectType.BOOK) -> MutationResult:
        """Create a placeholder project of the given type."""
        return self.submit(PROJECTS, new_project_fields(project_type, utc_now()))
