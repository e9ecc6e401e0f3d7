"""
Live collection subscription keeping a user-scoped snapshot current.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional, Tuple

from ..models.core import StoredDocument
from ..utils.firestore_client import FirestoreError
from ..utils.listeners import ListenerHandle, ListenerRegistry
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .record_mapping import MEMORIES, PROJECTS, build_snapshot, memory_from_document, project_from_document
from .session import Session, SessionContext

logger = get_logger(__name__)

Mapper = Callable[[StoredDocument, datetime], Any]


class LiveCollectionSubscription:
    """Snapshot of one user-scoped collection, replaced wholesale on every emission.

    Nothing is established until the bound session has both a store and an
    identity. Rebinding to a different store or identity releases the previous
    listener and starts from an empty, loading snapshot.
    """

    def __init__(self, collection: str, mapper: Mapper, clock: Callable[[], datetime] = utc_now):
        """
        Initialize an unbound subscription.

        Args:
            collection: Collection name ('memories' or 'projects')
            mapper: Pure function mapping a stored document to a record
            clock: Source of the snapshot construction time
        """
        self.collection = collection
        self.mapper = mapper
        self.clock = clock
        self.records: List[Any] = []
        self.loading = True
        self.last_error: Optional[str] = None
        self._handle: Optional[ListenerHandle] = None
        self._bound: Optional[Tuple[Any, str, str]] = None
        self._generation = 0
        self._listeners = ListenerRegistry(f'{collection} snapshot listeners')
        # Deliveries arrive on the store's watch thread while bind() runs on the auth thread
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        """Whether a store listener is currently attached."""
        return self._handle is not None and not self._handle.released

    def bind(self, session: Session) -> None:
        """Follow the given session, establishing or tearing down the listener as needed."""
        with self._lock:
            previous = self._bind(session)
        # Released outside the lock: closing a watch joins the thread that delivers to us
        if previous is not None:
            previous.release()

    def on_snapshot(self, callback: Callable[[List[Any]], Any]) -> ListenerHandle:
        """Register for snapshot replacements; the callback receives the new record list."""
        return self._listeners.add(callback)

    def close(self) -> None:
        """Release the store listener."""
        with self._lock:
            previous = self._detach()
            self._bound = None
        if previous is not None:
            previous.release()

    def __enter__(self) -> 'LiveCollectionSubscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _bind(self, session: Session) -> Optional[ListenerHandle]:
        target = (session.store, session.identity, session.app_id) if session.ready else None
        if self._same_binding(target):
            return None

        previous = self._detach()
        self.records = []
        self.loading = True
        self.last_error = None
        self._bound = target
        if target is None:
            logger.debug(f'Not subscribing to {self.collection}: store or identity unavailable')
            return previous

        generation = self._generation
        path = session.collection_path(self.collection)
        try:
            self._handle = session.store.subscribe(path,
                                                   lambda docs: self._on_documents(generation, docs),
                                                   lambda error: self._on_error(generation, error))
            logger.info(f'Subscribed to {path}')
        except FirestoreError as e:
            self._on_error(generation, e)
        return previous

    def _same_binding(self, target: Optional[Tuple[Any, str, str]]) -> bool:
        if target is None or self._bound is None:
            return target is None and self._bound is None
        store, identity, app_id = target
        bound_store, bound_identity, bound_app_id = self._bound
        return store is bound_store and identity == bound_identity and app_id == bound_app_id

    def _detach(self) -> Optional[ListenerHandle]:
        # Late deliveries from a detached listener are dropped by the generation check
        self._generation += 1
        handle, self._handle = self._handle, None
        return handle

    def _on_documents(self, generation: int, docs: List[StoredDocument]) -> None:
        if generation != self._generation:
            return

        try:
            records = build_snapshot(docs, self.mapper, self.clock())
        except Exception as e:
            self._on_error(generation, e)
            return

        with self._lock:
            # The session may have changed while the snapshot was being built
            if generation != self._generation:
                logger.debug(f'Dropped stale {self.collection} delivery')
                return
            self.records = records
            self.loading = False
            self.last_error = None
        logger.debug(f'{self.collection} snapshot replaced with {len(records)} records')
        self._listeners.notify(records)

    def _on_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self.loading = False
            self.last_error = str(error)
        logger.error(f'Error fetching {self.collection}: {error}')


@contextmanager
def mount(session_context: SessionContext, collection: str, mapper: Mapper) -> Iterator[LiveCollectionSubscription]:
    """Keep a subscription bound to the session for the duration of the block.

    Both the session listener and the store listener are released on exit.
    """
    subscription = LiveCollectionSubscription(collection, mapper)
    with session_context.on_change(subscription.bind), subscription:
        subscription.bind(session_context.current())
        yield subscription


def mount_memories(session_context: SessionContext):
    return mount(session_context, MEMORIES, memory_from_document)


def mount_projects(session_context: SessionContext):
    return mount(session_context, PROJECTS, project_from_document)
