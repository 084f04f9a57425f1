"""Value objects exchanged between the tag extractor, the file scanner and its caller."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class SongScanInformation:
    """Flat record of the tags read from one audio file.

    Produced fresh for every scanned file and never persisted as is: the
    scanner turns ``to_dict()`` into catalog fields after resolving the
    artist/album names into entities.

    Attributes:
        path: Absolute path of the scanned file.
        title: Track title; the file stem when the tag is missing.
        artist: Track artist name ("" when missing).
        albumartist: Album artist name ("" when missing).
        album: Album name ("" when missing).
        track: Track number within the disc.
        disc: Disc number (1 when missing).
        year: Release year.
        genre: Genre name ("" when missing).
        lyrics: Embedded lyrics, or the sidecar file contents.
        length: Playable duration in seconds.
        mtime: Filesystem modification time (whole seconds).
        cover: Embedded artwork as {"data": bytes, "mime": str}.
    """

    path: str
    title: str = ""
    artist: str = ""
    albumartist: str = ""
    album: str = ""
    track: Optional[int] = None
    disc: int = 1
    year: Optional[int] = None
    genre: str = ""
    lyrics: str = ""
    length: float = 0.0
    mtime: Optional[int] = None
    cover: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if not self.title:
            self.title = Path(self.path).stem

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "albumartist": self.albumartist,
            "album": self.album,
            "track": self.track,
            "disc": self.disc,
            "year": self.year,
            "genre": self.genre,
            "lyrics": self.lyrics,
            "length": self.length,
            "mtime": self.mtime,
            "cover": self.cover,
            "path": self.path,
        }


@dataclass(frozen=True)
class ExtractionFailure:
    """The file could not be read as audio (corrupt, empty or unsupported)."""

    reason: str


class ScanResultType(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning a single file. Exactly one per file.

    Example:
        >>> ScanResult.error("/music/a.mp3", "Empty file").is_error
        True
    """

    type: ScanResultType
    path: str
    error: Optional[str] = field(default=None)

    @classmethod
    def success(cls, path: str) -> "ScanResult":
        return cls(ScanResultType.SUCCESS, path)

    @classmethod
    def skipped(cls, path: str) -> "ScanResult":
        return cls(ScanResultType.SKIPPED, path)

    @classmethod
    def error(cls, path: str, error: Optional[str] = None) -> "ScanResult":
        return cls(ScanResultType.ERROR, path, error)

    @property
    def is_success(self) -> bool:
        return self.type is ScanResultType.SUCCESS

    @property
    def is_skipped(self) -> bool:
        return self.type is ScanResultType.SKIPPED

    @property
    def is_error(self) -> bool:
        return self.type is ScanResultType.ERROR

    def __str__(self) -> str:
        if self.is_error:
            return f"{self.type.value}: {self.path} ({self.error})"
        return f"{self.type.value}: {self.path}"
