"""Single-file scanner: decides skip/new/changed and syncs one file into the catalog.

A FileScanner is bound to exactly one file at a time (``set_file``) and then
``scan`` turns it into a ScanResult:

    scanner = FileScanner(repository, cache=cache)
    result = scanner.set_file("/music/Led Zeppelin/IV/01 Black Dog.mp3").scan(config)

The scanner keeps per-file state (the bound song, its path and mtime), so
callers scanning files in parallel use one instance per file. What is shared
between instances (the entity/cover caches and the store) is thread-safe.
"""

import os
from typing import Any, Dict, Optional, Union

from loguru import logger

from trackvault.core.cache import CacheStrategy
from trackvault.core.config import settings
from trackvault.core.models import Album, Artist, Song
from trackvault.core.repository import Repository
from trackvault.core.scanner_config import ScanConfiguration
from trackvault.core.values import ExtractionFailure, ScanResult, SongScanInformation
from trackvault.worker.artwork import AlbumCoverWriter
from trackvault.worker.covers import CoverResolver
from trackvault.worker.lyrics import LrcReader
from trackvault.worker.media_browser import LocalStorage, MediaBrowser, StorageBackend
from trackvault.worker.resolver import EntityResolver
from trackvault.worker.tags import TagExtractor, get_mtime

INVALID_FILE = "Possible invalid file"

# Info keys resolved into entities instead of being written to the song row
_ENTITY_KEYS = ("album", "artist", "albumartist", "cover", "path")


class SongNotBoundError(RuntimeError):
    """No song is bound to the scanner (no set_file/scan yet, or the scan produced none)."""


class FileScanner:
    """Scans one audio file into the catalog.

    Attributes:
        repository: Catalog store.
        extractor: Tag extractor producing SongScanInformation.
        lrc_reader: Sidecar lyrics reader, used when the file has no embedded lyrics.
        resolver: Cached artist/album resolution.
        cover_resolver: Directory cover discovery.
        cover_writer: Stores album covers.
        storage: Capability check for folder structure extraction.
        media_browser: Folder structure derivation (None disables it).
        file_path: Real path of the bound file.
        file_modified_time: mtime of the bound file when it was bound.
        song: Catalog song for the bound file (None while the file is new).
        sync_error: Reason of the last extraction failure.
    """

    def __init__(
        self,
        repository: Repository,
        extractor: Optional[TagExtractor] = None,
        lrc_reader: Optional[LrcReader] = None,
        resolver: Optional[EntityResolver] = None,
        cover_resolver: Optional[CoverResolver] = None,
        cover_writer: Optional[AlbumCoverWriter] = None,
        storage: Optional[StorageBackend] = None,
        media_browser: Optional[MediaBrowser] = None,
        cache: Optional[CacheStrategy] = None,
    ):
        self.repository = repository
        self.extractor = extractor or TagExtractor()
        self.lrc_reader = lrc_reader or LrcReader()
        self.resolver = resolver or EntityResolver(
            repository, cache, ttl=settings.ENTITY_CACHE_TTL
        )
        self.cover_resolver = cover_resolver or CoverResolver(
            cache, ttl=settings.COVER_CACHE_TTL
        )
        self.cover_writer = cover_writer or AlbumCoverWriter(repository)
        self.storage = storage or LocalStorage(settings.MEDIA_PATH)
        if media_browser is None and settings.MEDIA_PATH:
            media_browser = MediaBrowser(repository, settings.MEDIA_PATH)
        self.media_browser = media_browser

        self.file_path: Optional[str] = None
        self.file_modified_time: Optional[int] = None
        self.song: Optional[Song] = None
        self.sync_error: Optional[str] = None

    def set_file(self, path: Union[str, os.PathLike]) -> "FileScanner":
        """Bind the scanner to a file and load its catalog record, if any.

        Raises:
            OSError: If the file cannot be stat'd.
        """
        self.file_path = os.path.realpath(path)
        self.file_modified_time = get_mtime(self.file_path)
        self.song = self.repository.find_song_by_path(self.file_path)
        self.sync_error = None
        return self

    def get_scan_information(self) -> Optional[SongScanInformation]:
        """Extract tags from the bound file, falling back to sidecar lyrics.

        Returns:
            The extracted information, or None with ``sync_error`` set.
        """
        result = self.extractor.extract(self.file_path)
        if isinstance(result, ExtractionFailure):
            self.sync_error = result.reason
            return None

        self.sync_error = None
        result.mtime = self.file_modified_time
        if not result.lyrics:
            result.lyrics = self.lrc_reader.try_read_for_media_file(self.file_path) or ""
        return result

    def scan(self, config: ScanConfiguration) -> ScanResult:
        """Sync the bound file into the catalog.

        Unchanged files are skipped unless ``config.force``. Files that cannot
        be read as audio are reported with the extraction reason; any other
        failure is logged and reported as "Possible invalid file" so one bad
        file never aborts a library scan.

        Args:
            config: Options of the current scan run.

        Returns:
            Exactly one of success / skipped / error for the bound file.

        Raises:
            SongNotBoundError: If set_file() was not called first.
        """
        if self.file_path is None:
            raise SongNotBoundError("set_file() must be called before scan().")

        try:
            if not config.force and not self.is_file_new_or_changed():
                return ScanResult.skipped(self.file_path)

            scan_info = self.get_scan_information()
            if scan_info is None:
                return ScanResult.error(self.file_path, self.sync_error)

            info = scan_info.to_dict()
            if not self.is_file_new():
                # Keep manually curated values of existing songs
                for field in config.ignored_fields:
                    info.pop(field, None)

            artist = self._resolve_artist(config, info.get("artist"))
            album_artist = (
                self.resolver.resolve_artist(config.owner, info["albumartist"])
                if info.get("albumartist")
                else artist
            )
            album = self._resolve_album(album_artist, info.get("album"))

            # Album state may have changed since the entity was cached
            album = self.repository.get_album(album.id) or album

            if not album.has_cover and not config.ignores("cover"):
                self._try_generate_album_cover(album, info.get("cover"))

            data = self._song_fields(info, album, artist, config)
            self.song = self.repository.upsert_song(self.file_path, data)

            if not album.year and self.song.year:
                self.repository.set_album_year_if_missing(album.id, self.song.year)

            if config.extract_folder_structure:
                self._try_create_folder_structure()

            return ScanResult.success(self.file_path)
        except Exception as e:
            logger.exception(f"Error scanning file {self.file_path}: {type(e).__name__}: {e}")
            return ScanResult.error(self.file_path, INVALID_FILE)

    # ========== Entity resolution ==========

    def _resolve_artist(self, config: ScanConfiguration, name: Optional[str]) -> Artist:
        """Tagged artist, else the existing song's artist; new files fall back to Unknown Artist."""
        if name or self.is_file_new():
            return self.resolver.resolve_artist(config.owner, name)
        return self.song.artist

    def _resolve_album(self, album_artist: Artist, name: Optional[str]) -> Album:
        """Tagged album, else the existing song's album; new files fall back to Unknown Album."""
        if name or self.is_file_new():
            return self.resolver.resolve_album(album_artist, name)
        return self.song.album

    def _song_fields(
        self, info: Dict[str, Any], album: Album, artist: Artist, config: ScanConfiguration
    ) -> Dict[str, Any]:
        data = {key: value for key, value in info.items() if key not in _ENTITY_KEYS}
        data["album_id"] = album.id
        data["artist_id"] = artist.id
        data["is_public"] = config.make_public

        if self.is_file_new():
            # Only set the owner for new songs; re-scans never take ownership
            data["owner_id"] = config.owner.id
        return data

    # ========== Best-effort side effects ==========

    def _try_generate_album_cover(self, album: Album, cover_data: Optional[Dict[str, Any]]) -> None:
        """Give the album a cover from the embedded artwork, or from a cover file
        in the same directory. Failures are logged and never fail the scan."""
        try:
            if cover_data:
                self.cover_writer.write_album_cover(album, cover_data["data"])
                return

            cover_file = self.cover_resolver.find_cover_in_directory(os.path.dirname(self.file_path))
            if cover_file is not None:
                self.cover_writer.write_album_cover(album, cover_file)
        except Exception as e:
            logger.warning(f"Could not generate cover for album {album.id} from {self.file_path}: {e}")

    def _try_create_folder_structure(self) -> None:
        if self.media_browser is None:
            return
        try:
            if self.storage.supports_folder_structure_extraction(self.song):
                self.media_browser.maybe_create_folder_structure_for_song(self.song)
        except Exception as e:
            logger.warning(f"Could not derive folder structure for {self.file_path}: {e}")

    # ========== State predicates ==========

    def is_file_new(self) -> bool:
        """Determine if the file is new (no catalog song exists for its path)."""
        return self.song is None

    def is_file_changed(self) -> bool:
        """Determine if the file changed (a song exists, but its stored mtime differs)."""
        return not self.is_file_new() and self.song.mtime != self.file_modified_time

    def is_file_new_or_changed(self) -> bool:
        return self.is_file_new() or self.is_file_changed()

    def get_song(self) -> Song:
        if self.song is None:
            raise SongNotBoundError("No song model is available.")
        return self.song
