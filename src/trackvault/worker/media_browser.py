"""Folder structure derivation for songs stored on a local media root.

Whether a song's folders can be derived depends on where the song is stored,
so the scanner asks its StorageBackend instead of checking storage types. New
backends only need to implement ``supports_folder_structure_extraction``.
"""

import os
from pathlib import Path, PurePath
from typing import List, Optional, Protocol, Union

from loguru import logger

from trackvault.core.models import Folder, Song
from trackvault.core.repository import Repository


class StorageBackend(Protocol):
    """Capability check for where a song's file lives."""

    def supports_folder_structure_extraction(self, song: Song) -> bool:
        ...


class LocalStorage:
    """Songs stored on the local filesystem below a media root.

    Attributes:
        media_root: Root directory folders are derived from (None: no root configured).
    """

    def __init__(self, media_root: Optional[Union[str, os.PathLike]] = None):
        self.media_root = Path(media_root).resolve() if media_root else None

    def supports_folder_structure_extraction(self, song: Song) -> bool:
        if self.media_root is None:
            return False
        return PurePath(song.path).is_relative_to(self.media_root)


class MediaBrowser:
    """Mirrors the directories between the media root and a song as Folder rows.

    Attributes:
        repository: Store the folders are written to.
        media_root: Top-most directory represented as a Folder.
    """

    def __init__(self, repository: Repository, media_root: Union[str, os.PathLike]):
        self.repository = repository
        self.media_root = Path(media_root).resolve()

    def maybe_create_folder_structure_for_song(self, song: Song) -> Optional[Folder]:
        """Create (or reuse) one Folder per directory from the media root to the
        song's directory and link the song to the deepest one.

        Returns:
            The song's folder, or None if the song is outside the media root.
        """
        song_path = PurePath(song.path)
        if not song_path.is_relative_to(self.media_root):
            logger.debug(f"{song.path} is outside {self.media_root}, no folder structure")
            return None

        if song.folder_id is not None and song.folder is not None and song.folder.path == str(song_path.parent):
            return song.folder

        parent: Optional[Folder] = None
        for directory in self._directories_down_to(song_path.parent):
            parent = self.repository.get_or_create_folder(str(directory), parent)

        self.repository.set_song_folder(song, parent)
        return parent

    def _directories_down_to(self, directory: PurePath) -> List[PurePath]:
        """media_root, then each directory below it down to and including directory."""
        relative = directory.relative_to(self.media_root)
        chain = [PurePath(self.media_root)]
        for part in relative.parts:
            chain.append(chain[-1] / part)
        return chain
