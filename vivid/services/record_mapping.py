"""
Pure mapping from stored documents to fully-populated records.

Every ingestion site goes through these functions so that no record reaches a
consumer without its display-safe defaults. Nothing here touches the store.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

from ..models.core import Memory, Project, ProjectBuckets, ProjectType, StoredDocument
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import format_clock_time, format_long_date, format_numeric_date, to_datetime

logger = get_logger(__name__)

MEMORIES = 'memories'
PROJECTS = 'projects'
COLLECTIONS = (MEMORIES, PROJECTS)

DEFAULT_MEMORY_IMAGE = 'https://via.placeholder.com/100x100?text=Mem'
DEFAULT_MEMORY_FULL_IMAGE = 'https://via.placeholder.com/600x400?text=FullMem'
DEFAULT_PROJECT_COVER = 'https://via.placeholder.com/100x130?text=Book'
DEFAULT_PROJECT_THUMBNAIL = 'https://via.placeholder.com/180x100?text=Film'

NEW_MEMORY_IMAGE = 'https://via.placeholder.com/100x100?text=NewMem'
NEW_MEMORY_FULL_IMAGE = 'https://via.placeholder.com/600x400?text=Uploaded+Memory+{number}'
NEW_PROJECT_COVER = 'https://via.placeholder.com/100x130?text=NewProject'
NEW_PROJECT_THUMBNAIL = 'https://via.placeholder.com/180x100?text=NewFilm'
NEW_PROJECT_PAGE = 'https://via.placeholder.com/60x60'

BUCKET_KEYS = {
    ProjectType.BOOK: 'memoryBooks',
    ProjectType.FILM: 'memoryFilms',
    ProjectType.GIFT: 'printedGifts',
}

RecordT = TypeVar('RecordT', Memory, Project)


def collection_path(app_id: str, identity: str, collection: str) -> str:
    """User-scoped collection path: artifacts/{app_id}/users/{identity}/{collection}."""
    if collection not in COLLECTIONS:
        raise ValueError(f'Unknown collection: {collection}')
    if not app_id or not identity:
        raise ValueError('Both app_id and identity are required for a user-scoped path')
    return f'artifacts/{app_id}/users/{identity}/{collection}'


def memory_defaults(now: datetime) -> Dict[str, Any]:
    """Default stored fields of a memory, evaluated at snapshot time."""
    return {
        'date': format_long_date(now),
        'description': 'Default description',
        'imageUrl': DEFAULT_MEMORY_IMAGE,
        'fullImageUrl': DEFAULT_MEMORY_FULL_IMAGE,
        'tags': ['No', 'Tags'],
        'hasMusic': False,
    }


def project_defaults(now: datetime) -> Dict[str, Any]:
    """Default stored fields of a project, evaluated at snapshot time."""
    return {
        'type': ProjectType.BOOK.value,
        'title': 'Untitled project',
        'cover': DEFAULT_PROJECT_COVER,
        'thumbnail': DEFAULT_PROJECT_THUMBNAIL,
        'images': [],
        'progress': 0,
        'lastEdited': format_numeric_date(now),
        'memoryIds': [],
    }


def merge_defaults(stored: Mapping[str, Any], defaults: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay stored fields on the defaults, key by key.

    A stored value wins only when its key is present and not null.
    """
    merged = dict(defaults)
    for key in defaults:
        if stored.get(key) is not None:
            merged[key] = stored[key]
    return merged


def memory_from_document(doc: StoredDocument, now: datetime) -> Memory:
    """Map a stored memory document to a Memory with every display field set."""
    fields = merge_defaults(doc.data, memory_defaults(now))
    return Memory(id=doc.id,
                  date=str(fields['date']),
                  description=str(fields['description']),
                  image_url=str(fields['imageUrl']),
                  full_image_url=str(fields['fullImageUrl']),
                  tags=_string_list(fields['tags']),
                  has_music=bool(fields['hasMusic']),
                  created_at=to_datetime(doc.data.get('createdAt'), fallback=now))


def project_from_document(doc: StoredDocument, now: datetime) -> Project:
    """Map a stored project document to a Project with every display field set."""
    fields = merge_defaults(doc.data, project_defaults(now))
    return Project(id=doc.id,
                   type=_project_type(fields['type'], doc.id),
                   title=str(fields['title']),
                   cover=str(fields['cover']),
                   thumbnail=str(fields['thumbnail']),
                   images=_string_list(fields['images']),
                   progress=_progress(fields['progress']),
                   last_edited=str(fields['lastEdited']),
                   memory_ids=set(_string_list(fields['memoryIds'])),
                   created_at=to_datetime(doc.data.get('createdAt'), fallback=now))


def build_snapshot(docs: Iterable[StoredDocument], mapper: Callable[[StoredDocument, datetime], RecordT],
                   now: datetime) -> List[RecordT]:
    """Map every document and order newest first.

    Documents without a resolved creation time sort as if created at `now`.
    The sort is stable, so equal times keep the store's delivery order.
    """
    records = [mapper(doc, now) for doc in docs]
    records.sort(key=lambda record: record.created_at, reverse=True)
    return records


def categorize_projects(projects: Iterable[Project]) -> ProjectBuckets:
    """Split projects into their book, film and gift buckets."""
    buckets = ProjectBuckets()
    for project in projects:
        if project.type is ProjectType.BOOK:
            buckets.memory_books.append(project)
        elif project.type is ProjectType.FILM:
            buckets.memory_films.append(project)
        elif project.type is ProjectType.GIFT:
            buckets.printed_gifts.append(project)
    return buckets


def bucket_key(project_type: ProjectType) -> str:
    return BUCKET_KEYS[ProjectType(project_type)]


def placeholder_media(collection: str) -> Dict[str, str]:
    """Default media URLs every new record of a collection is written with."""
    if collection == MEMORIES:
        return {'imageUrl': DEFAULT_MEMORY_IMAGE, 'fullImageUrl': DEFAULT_MEMORY_FULL_IMAGE}
    if collection == PROJECTS:
        return {'cover': DEFAULT_PROJECT_COVER, 'thumbnail': DEFAULT_PROJECT_THUMBNAIL}
    raise ValueError(f'Unknown collection: {collection}')


def new_memory_fields(
existing_count: int, now: datetime) -> Dict[str, Any]:
    """Placeholder fields for a freshly uploaded memory."""
    return {
        'date': format_long_date(now),
        'description': f'New upload at {format_clock_time(now)}',
        'imageUrl': NEW_MEMORY_IMAGE,
        'fullImageUrl': NEW_MEMORY_FULL_IMAGE.format(number=existing_count + 1),
        'tags': ['New', 'Draft'],
        'hasMusic': False,
    }


def new_project_fields(project_type: ProjectType, now: datetime) -> Dict[str, Any]:
    """Placeholder fields for a newly started project."""
    project_type = ProjectType(project_type)
    label = project_type.value.capitalize()
    return {
        'type': project_type.value,
        'title': f'New {label} Project ({format_numeric_date(now)})',
        'cover': NEW_PROJECT_COVER,
        'thumbnail': NEW_PROJECT_THUMBNAIL,
        'images': [NEW_PROJECT_PAGE, NEW_PROJECT_PAGE] if project_type is ProjectType.BOOK else [],
        'progress': 10,
        'lastEdited': format_long_date(now),
        'memoryIds': [],
    }


def _string_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value]
    return [str(value)]


def _project_type(value: Any, doc_id: str) -> Optional[ProjectType]:
    try:
        return ProjectType(value)
    except (TypeError, ValueError):
        logger.warning(f'Project {doc_id} has unknown type {value!r}, it will not be listed in any category')
        return None


def _progress(value: Any) -> int:
    try:
        progress = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, progress))
