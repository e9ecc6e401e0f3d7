"""
Core data models for the memory boutique client.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class ProjectType(str, Enum):
    """Closed set of creative project kinds."""
    BOOK = 'book'
    FILM = 'film'
    GIFT = 'gift'


class AuthState(str, Enum):
    """States of the authentication state machine."""
    UNRESOLVED = 'unresolved'
    SIGNED_IN = 'signed_in'
    SIGNED_OUT = 'signed_out'


@dataclass
class AuthUser:
    """A signed-in user as reported by the identity provider."""
    uid: str  # Stable identity used to scope every collection path
    id_token: str
    refresh_token: str
    expires_at: Optional[datetime] = None  # Naive UTC, as google-auth expects
    is_anonymous: bool = False


@dataclass
class StoredDocument:
    """Store-neutral view of one raw document: its id and stored fields."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Memory:
    """A personal media item shown in the home feed and the detail page."""
    id: str
    date: str
    description: str
    image_url: str
    full_image_url: str
    tags: List[str]
    has_music: bool
    created_at: datetime  # Server-assigned, or snapshot time when not yet resolved


@dataclass
class Project:
    """A creative project (book, film or printed gift) built from memories."""
    id: str
    type: Optional[ProjectType]  # None for a stored type outside the three kinds
    title: str
    cover: str
    thumbnail: str
    images: List[str]
    progress: int  # 0-100
    last_edited: str
    memory_ids: Set[str]
    created_at: datetime


@dataclass
class ProjectBuckets:
    """Projects split by type, each keeping snapshot order."""
    memory_books: List[Project] = field(default_factory=list)
    memory_films: List[Project] = field(default_factory=list)
    printed_gifts: List[Project] = field(default_factory=list)

    def by_key(self) -> Dict[str, List[Project]]:
        return {
            'memoryBooks': self.memory_books,
            'memoryFilms': self.memory_films,
            'printedGifts': self.printed_gifts,
        }
