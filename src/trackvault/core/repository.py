"""Catalog persistence used by the scanner.

FileScanner only talks to the Repository protocol. SqlAlchemyRepository is the
shipped implementation; every write commits its own transaction so a failure
in one scan step never leaves half-written rows behind for the next file.
"""

from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

from loguru import logger
from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trackvault.core.models import Album, Artist, Folder, Song, User


class Repository(Protocol):
    """Store operations the scanning engine depends on."""

    def find_song_by_path(self, path: str) -> Optional[Song]:
        ...

    def upsert_song(self, path: str, fields: Dict[str, Any]) -> Song:
        ...

    def get_or_create_artist(self, owner: User, name: str) -> Artist:
        ...

    def get_or_create_album(self, artist: Artist, name: str) -> Album:
        ...

    def get_album(self, album_id: int) -> Optional[Album]:
        ...

    def set_album_year_if_missing(self, album_id: int, year: int) -> bool:
        ...

    def set_album_cover(self, album_id: int, cover: str) -> None:
        ...

    def get_or_create_user(self, name: str) -> User:
        ...

    def get_or_create_folder(self, path: str, parent: Optional[Folder] = None) -> Folder:
        ...

    def set_song_folder(self, song: Song, folder: Folder) -> None:
        ...

    def delete_songs_not_in(self, root: str, seen_paths: Iterable[str]) -> int:
        ...

    def prune_empty_albums_and_artists(self) -> Tuple[int, int]:
        ...


class SqlAlchemyRepository:
    """Repository backed by a synchronous SQLAlchemy session.

    get_or_create_* are safe against concurrent writers: the insert relies on
    the table's unique constraint and, on IntegrityError, rolls back and reads
    the row the other writer committed. The entities they return are detached
    from the session so the resolver cache can hand them to scanners running
    on other sessions; only their column values (id, name) are used there.

    Attributes:
        session: SQLAlchemy session owned by the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    # ========== Songs ==========

    def find_song_by_path(self, path: str) -> Optional[Song]:
        stmt = select(Song).where(Song.path == path)
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert_song(self, path: str, fields: Dict[str, Any]) -> Song:
        """Create the song for path, or update every given field of the existing one.

        Args:
            path: Absolute file path (natural key).
            fields: Column values to write.

        Returns:
            The persisted Song.
        """
        song = self.find_song_by_path(path)
        try:
            if song is None:
                song = Song(path=path, **fields)
                self.session.add(song)
            else:
                for name, value in fields.items():
                    setattr(song, name, value)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return song

    def set_song_folder(self, song: Song, folder: Folder) -> None:
        song.folder_id = folder.id
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def delete_songs_not_in(self, root: str, seen_paths: Iterable[str]) -> int:
        """Delete songs stored under root whose path was not seen during the scan.

        Args:
            root: Directory prefix the scan covered.
            seen_paths: Paths found on disk during the scan.

        Returns:
            Number of deleted songs.
        """
        seen = set(seen_paths)
        prefix = root.rstrip("/\\")
        stmt = select(Song.id, Song.path).where(Song.path.startswith(prefix, autoescape=True))
        stale_ids = [
            row.id
            for row in self.session.execute(stmt).all()
            if row.path not in seen and _is_under(row.path, prefix)
        ]
        if not stale_ids:
            return 0

        try:
            for start in range(0, len(stale_ids), 500):
                chunk = stale_ids[start : start + 500]
                self.session.execute(delete(Song).where(Song.id.in_(chunk)))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"Removed {len(stale_ids)} songs no longer present under {root}")
        return len(stale_ids)

    # ========== Artists & Albums ==========

    def get_or_create_user(self, name: str) -> User:
        user = self.session.execute(select(User).where(User.name == name)).scalar_one_or_none()
        if user is not None:
            return user
        return self._insert_or_refetch(
            User(name=name), lambda: select(User).where(User.name == name)
        )

    def get_or_create_artist(self, owner: User, name: str) -> Artist:
        """Return the owner's artist with this name, creating it if needed.

        An empty (or blank) name resolves to the "Unknown Artist" sentinel.
        """
        name = (name or "").strip() or Artist.UNKNOWN_NAME
        owner_id = owner.id

        def query():
            return select(Artist).where(Artist.owner_id == owner_id, Artist.name == name)

        artist = self.session.execute(query()).scalar_one_or_none()
        if artist is None:
            artist = self._insert_or_refetch(Artist(owner_id=owner_id, name=name), query)
            logger.debug(f"Artist ready: {name!r} (owner {owner_id}, id {artist.id})")
        self.session.expunge(artist)
        return artist

    def get_or_create_album(self, artist: Artist, name: str) -> Album:
        """Return the artist's album with this name, creating it if needed.

        An empty (or blank) name resolves to the "Unknown Album" sentinel.
        """
        name = (name or "").strip() or Album.UNKNOWN_NAME
        artist_id = artist.id

        def query():
            return select(Album).where(Album.artist_id == artist_id, Album.name == name)

        album = self.session.execute(query()).scalar_one_or_none()
        if album is None:
            album = self._insert_or_refetch(Album(artist_id=artist_id, name=name), query)
            logger.debug(f"Album ready: {name!r} (artist {artist_id}, id {album.id})")
        self.session.expunge(album)
        return album

    def get_album(self, album_id: int) -> Optional[Album]:
        """Load the album's current state from the store (never a stale identity-map copy)."""
        return self.session.get(Album, album_id, populate_existing=True)

    def set_album_year_if_missing(self, album_id: int, year: int) -> bool:
        """Set the album year unless one is already stored. First writer wins.

        Returns:
            True if this call set the year.
        """
        stmt = (
            update(Album)
            .where(Album.id == album_id, Album.year.is_(None))
            .values(year=year)
        )
        try:
            updated = self.session.execute(stmt).rowcount
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return updated == 1

    def set_album_cover(self, album_id: int, cover: str) -> None:
        try:
            self.session.execute(update(Album).where(Album.id == album_id).values(cover=cover))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def prune_empty_albums_and_artists(self) -> Tuple[int, int]:
        """Delete albums without songs, then artists without songs or albums.

        Returns:
            Tuple of (albums_deleted, artists_deleted).
        """
        try:
            albums = self.session.execute(
                delete(Album).where(~exists().where(Song.album_id == Album.id))
            ).rowcount
            artists = self.session.execute(
                delete(Artist).where(
                    ~exists().where(Song.artist_id == Artist.id),
                    ~exists().where(Album.artist_id == Artist.id),
                )
            ).rowcount
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        if albums or artists:
            logger.info(f"Pruned {albums} empty albums and {artists} empty artists")
        return albums, artists

    # ========== Folders ==========

    def get_or_create_folder(self, path: str, parent: Optional[Folder] = None) -> Folder:
        def query():
            return select(Folder).where(Folder.path == path)

        folder = self.session.execute(query()).scalar_one_or_none()
        if folder is None:
            parent_id = parent.id if parent is not None else None
            folder = self._insert_or_refetch(Folder(path=path, parent_id=parent_id), query)
        return folder

    # ========== Helpers ==========

    def _insert_or_refetch(self, entity, query):
        """Commit a new row; if a concurrent writer beat us to it, load theirs instead.

        Raises:
            IntegrityError: If the insert failed and no conflicting row exists
                (i.e. the failure was not a uniqueness race).
        """
        try:
            self.session.add(entity)
            self.session.commit()
            return entity
        except IntegrityError:
            self.session.rollback()
            existing = self.session.execute(query()).scalar_one_or_none()
            if existing is None:
                raise
            logger.debug(f"Lost insert race for {type(entity).__name__}, using existing row {existing.id}")
            return existing


def _is_under(path: str, prefix: str) -> bool:
    """True if path is prefix itself or lives in a directory below it."""
    return path == prefix or path[len(prefix) : len(prefix) + 1] in ("/", "\\")
