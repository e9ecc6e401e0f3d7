"""
Cloud Firestore client wrapper for user-scoped live collections.
"""

import threading
from typing import Any, Callable, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import credentials as google_credentials
from google.auth import exceptions as google_auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1 import document
from google.cloud.firestore_v1.query import Query
from google.cloud.firestore_v1.watch import Watch

from ..models.core import StoredDocument
from .config import AppConfig
from .listeners import ListenerHandle
from .logging_config import get_logger

logger = get_logger(__name__)

# Failures the Firestore client surfaces for network, permission, quota and auth problems
STORE_EXCEPTIONS = (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError)


class FirestoreError(Exception):
    """Custom exception for Firestore errors."""
    pass


class ReportingWatch(Watch):
    """Watch that reports an unrecoverable stream termination to a callback.

    The stock Watch closes itself and raises the termination reason on a
    background thread, where no caller can observe it.
    """

    def __init__(self, *args, **kwargs):
        self._termination_lock = threading.Lock()
        self._termination_callback: Optional[Callable[[Exception], Any]] = None
        self._termination: Optional[Exception] = None
        self.terminated = threading.Event()
        super().__init__(*args, **kwargs)

    def on_terminated(self, callback: Callable[[Exception], Any]) -> None:
        """Register the termination callback; called at once if the stream already ended."""
        with self._termination_lock:
            self._termination_callback = callback
            termination = self._termination
        if termination is not None:
            callback(termination)

    def _on_rpc_done(self, future) -> None:
        # Runs on the stream consumer's thread, which close() joins; a stream ended by
        # unsubscribe() is not reported
        error = future if isinstance(future, Exception) else RuntimeError(str(future))
        if not isinstance(error, google_exceptions.GoogleAPIError):
            error = google_exceptions.from_grpc_error(error)
        thread = threading.Thread(name='Thread-WatchTerminated', target=self._terminate, args=(error,))
        thread.daemon = True
        thread.start()

    def _terminate(self, error: Exception) -> None:
        with self._closing:
            unsubscribed = self._closed
        try:
            if unsubscribed:
                return
            self.close()
            with self._termination_lock:
                self._termination = error
                callback = self._termination_callback
            if callback is not None:
                callback(error)
        finally:
            self.terminated.set()


class DocumentStore:
    """Firestore handle exposing the three operations the client relies on."""

    def __init__(self, client: firestore.Client):
        """
        Initialize the document store.

        Args:
            client: Configured Firestore client
        """
        self.client = client
        logger.info(f'Initialized Firestore store for project: {client.project}')

    @classmethod
    def from_config(cls, project_id: str, credentials: Optional[google_credentials.Credentials] = None) -> 'DocumentStore':
        """Create a store for the given Firebase project."""
        return cls(firestore.Client(project=project_id, credentials=credentials))

    def subscribe(self, path: str, on_documents: Callable[[List[StoredDocument]], Any],
                  on_error: Callable[[Exception], Any]) -> ListenerHandle:
        """
        Attach a live-query listener to a collection.

        Args:
            path: Slash-separated collection path
            on_documents: Called with the full document list on every delivery
            on_error: Called when a delivery cannot be handled or the stream terminates

        Returns:
            Handle whose release() detaches the listener

        Raises:
            FirestoreError: If the listener cannot be attached
        """

        def _on_snapshot(docs, changes, read_time):
            try:
                documents = [StoredDocument(id=doc.id, data=doc.to_dict() or {}) for doc in docs]
                on_documents(documents)
            except Exception as e:
                logger.error(f'Error delivering snapshot for {path}: {e}')
                on_error(e)

        try:
            watch = self._watch(path, _on_snapshot)
        except STORE_EXCEPTIONS as e:
            logger.error(f'Error attaching listener to {path}: {e}')
            raise FirestoreError(f'Failed to subscribe to {path}: {e}')
        except ValueError as e:
            logger.error(f'Invalid collection path {path}: {e}')
            raise FirestoreError(f'Failed to subscribe to {path}: {e}')

        handle = ListenerHandle(watch.unsubscribe, name=f'snapshot listener {path}')

        def _on_terminated(error: Exception) -> None:
            logger.error(f'Snapshot listener for {path} terminated: {error}')
            handle.release()
            on_error(FirestoreError(f'Listener for {path} terminated: {error}'))

        watch.on_terminated(_on_terminated)
        logger.debug(f'Attached snapshot listener to {path}')
        return handle

    def _watch(self, path: str, callback: Callable[..., Any]) -> 'ReportingWatch':
        query = Query(self.client.collection(path))
        return ReportingWatch.for_query(query, callback, document.DocumentSnapshot, document.DocumentReference)

    def add_document(self, path: str, fields: Dict[str, Any]) -> str:
        """
        Append a document with a store-assigned id.

        Args:
            path: Slash-separated collection path
            fields: Field mapping, may contain server_timestamp() sentinels

        Returns:
            The new document id

        Raises:
            FirestoreError: If the write fails
        """
        try:
            _, ref = self.client.collection(path).add(fields)
        except STORE_EXCEPTIONS as e:
            logger.error(f'Error adding document to {path}: {e}')
            raise FirestoreError(f'Failed to add document: {e}')

        logger.debug(f'Added document {ref.id} to {path}')
        return ref.id

    def server_timestamp(self) -> Any:
        """Sentinel the store resolves to its commit time."""
        return firestore.SERVER_TIMESTAMP

    def close(self) -> None:
        """Close the underlying client."""
        self.client.close()


def build_store(config: AppConfig, credentials: Optional[google_credentials.Credentials] = None) -> Optional[DocumentStore]:
    """Create the store handle, or None when persistence is unavailable.

    A missing configuration is reported once here and nowhere else.
    """
    if config.firebase is None:
        logger.error('Firebase config is missing. Data persistence will not work.')
        return None

    try:
        return DocumentStore.from_config(config.firebase.project_id, credentials)
    except (google_auth_exceptions.GoogleAuthError, ValueError) as e:
        logger.error(f'Firestore could not be initialized, data persistence will not work: {e}')
        return None
