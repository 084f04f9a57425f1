"""Catalog models: User, Artist, Album, Folder, Song."""

from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvault.core.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """Owner of scanned songs. Accounts are managed elsewhere; only the id matters here."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True)


class Artist(Base, TimestampMixin):
    """A performer, unique per owner and name."""

    __tablename__ = "artists"
    __table_args__ = (UniqueConstraint("owner_id", "name", name="uq_artist_owner_name"),)

    UNKNOWN_NAME = "Unknown Artist"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String, index=True)

    albums: Mapped[List["Album"]] = relationship(back_populates="artist")
    songs: Mapped[List["Song"]] = relationship(back_populates="artist")

    @property
    def is_unknown(self) -> bool:
        return self.name == self.UNKNOWN_NAME


class Album(Base, TimestampMixin):
    """A release, unique per album artist and name.

    ``cover`` holds the artwork filename relative to settings.ARTWORK_DIR.
    """

    __tablename__ = "albums"
    __table_args__ = (UniqueConstraint("artist_id", "name", name="uq_album_artist_name"),)

    UNKNOWN_NAME = "Unknown Album"

    id: Mapped[int] = mapped_column(primary_key=True)
    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), index=True)
    name: Mapped[str] = mapped_column(String, index=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cover: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    artist: Mapped["Artist"] = relationship(back_populates="albums")
    songs: Mapped[List["Song"]] = relationship(back_populates="album")

    @property
    def has_cover(self) -> bool:
        return bool(self.cover)


class Folder(Base, TimestampMixin):
    """A directory inside the media root, linked to its parent directory."""

    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True, index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("folders.id"), nullable=True
    )

    parent: Mapped[Optional["Folder"]] = relationship(remote_side="Folder.id")
    songs: Mapped[List["Song"]] = relationship(back_populates="folder")


class Song(Base, TimestampMixin):
    """A scanned audio file. The absolute path is the natural key."""

    __tablename__ = "songs"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True, index=True)
    title: Mapped[str] = mapped_column(String, default="")
    track: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    disc: Mapped[int] = mapped_column(Integer, default=1)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    genre: Mapped[str] = mapped_column(String, default="")
    lyrics: Mapped[str] = mapped_column(Text, default="")
    length: Mapped[float] = mapped_column(Float, default=0.0)
    mtime: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)

    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), index=True)
    album_id: Mapped[int] = mapped_column(ForeignKey("albums.id"), index=True)
    folder_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("folders.id"), nullable=True
    )

    owner: Mapped["User"] = relationship()
    artist: Mapped["Artist"] = relationship(back_populates="songs")
    album: Mapped["Album"] = relationship(back_populates="songs")
    folder: Mapped[Optional["Folder"]] = relationship(back_populates="songs")
