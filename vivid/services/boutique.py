"""
Boutique application service: wires auth, session and subscriptions, and
renders the home feed, memory detail and projects screens as plain data.
"""

from contextlib import ExitStack
from typing import Any, Dict, List, Optional

from ..models.core import Memory, ProjectType
from ..utils.config import AppConfig, config
from ..utils.firestore_client import build_store
from ..utils.identity_client import IdentityClient, IdentityTokenCredentials
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import format_long_date
from .auth_state import AuthStateMachine
from .live_collection import mount_memories, mount_projects
from .mutations import MutationResult, MutationSubmitter
from .record_mapping import bucket_key, categorize_projects
from .session import SessionContext

logger = get_logger(__name__)

FEATURED_TITLE = 'Continue your Memory Book / Film project'
EMPTY_FEED_MESSAGE = 'No memories found. Upload one with the + button.'
MEMORY_ACTIONS = ('Edit', 'Add to Project', 'Share', 'Export')
TAB_LABELS = {
    'memoryBooks': 'Memory Book',
    'memoryFilms': 'Memory Film',
    'printedGifts': 'Printed Gift',
}


class BoutiqueService:
    """Owns the live subscriptions of the three screens for its lifetime."""

    def __init__(self, session_context: SessionContext, app_config: Optional[AppConfig] = None,
                 credentials: Optional[IdentityTokenCredentials] = None):
        """
        Mount the memories and projects subscriptions on a session context.

        Args:
            session_context: Session context the subscriptions follow
            app_config: Configuration the service was built from, uses default if None
            credentials: Store credentials owned by the service, closed with it
        """
        self.session_context = session_context
        self.config = app_config or config
        self.notifications: List[str] = []

        # Closed in reverse: subscriptions, session, auth, store, credentials
        self._stack = ExitStack()
        if credentials is not None:
            self._stack.callback(credentials.close)
        if session_context.store is not None:
            self._stack.callback(session_context.store.close)
        self._stack.callback(session_context.auth.stop)
        self._stack.callback(session_context.close)
        self.memories = self._stack.enter_context(mount_memories(session_context))
        self.projects = self._stack.enter_context(mount_projects(session_context))
        logger.info('Initialized BoutiqueService')

    def close(self) -> None:
        """Release every listener, stop following auth state and close the store."""
        self._stack.close()

    def notify(self, message: str) -> None:
        """Blocking notification for the user."""
        logger.warning(f'User notification: {message}')
        self.notifications.append(message)

    def submitter(self) -> MutationSubmitter:
        return MutationSubmitter(self.session_context.current(), on_not_ready=self.notify)

    # ------------------------------------------------------------------
    # Screens
    # ------------------------------------------------------------------

    def session_status(self) -> Dict[str, Any]:
        auth = self.session_context.auth
        session = self.session_context.current()
        return {
            'ready': auth.ready,
            'state': auth.state,
            'identity': auth.identity,
            'persistence_available': session.store is not None,
        }

    def home_feed(self) -> Dict[str, Any]:
        """Newest-first memories plus the featured project card."""
        memories = self.memories.records
        feed: Dict[str, Any] = {
            'loading': self.memories.loading,
            'error': self.memories.last_error,
            'featured': {
                'title': FEATURED_TITLE,
                'navigate_to': 'Projects'
            },
            'memories': memories,
        }
        if not self.memories.loading and not memories:
            feed['empty_message'] = EMPTY_FEED_MESSAGE
        return feed

    def find_memory(self, memory_id: str) -> Optional[Memory]:
        for memory in self.memories.records:
            if memory.id == memory_id:
                return memory
        return None

    def memory_detail(self, memory_id: str) -> Dict[str, Any]:
        """The selected memory, carried by value, with its display date.

        Raises:
            ValueError: If the memory is not in the current snapshot
        """
        memory = self.find_memory(memory_id)
        if memory is None:
            raise ValueError(f'Unknown memory: {memory_id}')
        return {
            'memory': memory,
            'display_date': format_long_date(memory.created_at),
            'actions': list(MEMORY_ACTIONS),
        }

    def memory_action(self, memory_id: str, action: str) -> Dict[str, Any]:
        """Trigger a detail-page action; only 'Add to Project' navigates.

        Raises:
            ValueError: If the action is not one of MEMORY_ACTIONS
        """
        if action not in MEMORY_ACTIONS:
            raise ValueError(f'Unknown action: {action}')
        logger.info(f'{action} action triggered for {memory_id}')
        return {
            'memory_id': memory_id,
            'action': action,
            'navigate_to': 'Projects' if action == 'Add to Project' else None,
        }

    def projects_list(self, tab: str = 'memoryBooks') -> Dict[str, Any]:
        """One categorized bucket of projects plus the size of every bucket.

        Raises:
            ValueError: If tab is not a bucket key
        """
        if tab not in TAB_LABELS:
            raise ValueError(f'Unknown tab: {tab}')

        buckets = categorize_projects(self.projects.records).by_key()
        listing: Dict[str, Any] = {
            'loading': self.projects.loading,
            'error': self.projects.last_error,
            'tab': tab,
            'counts': {key: len(projects) for key, projects in buckets.items()},
            'projects': buckets[tab],
        }
        if not self.projects.loading and not buckets[tab]:
            listing['empty_message'] = f'No {TAB_LABELS[tab]} found. Start a new project!'
        return listing

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_memory(self) -> MutationResult:
        return self.submitter().add_memory(existing_count=len(self.memories.records))

    def start_project(self, project_type: str = ProjectType.BOOK.value) -> Dict[str, Any]:
        """Create a placeholder project; on success name the tab to switch to.

        Raises:
            ValueError: If project_type is not book, film or gift
        """
        kind = ProjectType(project_type)
        result = self.submitter().start_project(kind)
        return {'result': result, 'tab': bucket_key(kind) if result.ok else None}


def bootstrap(app_config: Optional[AppConfig] = None) -> BoutiqueService:
    """Build the service from configuration and start resolving the identity.

    Subscriptions are mounted before auth starts so they follow the first identity.
    """
    app_config = app_config or config

    identity_client = IdentityClient.from_config(app_config.firebase, app_config.auth)
    credentials = IdentityTokenCredentials(identity_client) if identity_client is not None else None
    store = build_store(app_config, credentials)

    auth = AuthStateMachine(identity_client, app_config.auth.initial_auth_token)
    service = BoutiqueService(SessionContext(store, auth, app_config.app_id), app_config, credentials)
    auth.start()
    return service

