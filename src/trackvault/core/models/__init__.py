"""SQLAlchemy models for the trackvault catalog.

Submodules:
- base: Base, TimestampMixin
- library: User, Artist, Album, Folder, Song
"""

from trackvault.core.models.base import Base, TimestampMixin
from trackvault.core.models.library import (
    Album,
    Artist,
    Folder,
    Song,
    User,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Artist",
    "Album",
    "Folder",
    "Song",
]
