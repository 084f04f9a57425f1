"""Configuration for a library scan run and for scanner performance tuning."""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from trackvault.core.models import User

# Fields an operator may protect from being overwritten by a re-scan
IGNORABLE_FIELDS = frozenset(
    {
        "title",
        "artist",
        "albumartist",
        "album",
        "track",
        "disc",
        "year",
        "genre",
        "lyrics",
        "cover",
    }
)


@dataclass(frozen=True)
class ScanConfiguration:
    """Per-run options for FileScanner.scan().

    Attributes:
        owner: User the newly discovered songs (and their artists) belong to.
        force: Re-read files even when their mtime did not change.
        make_public: Value written to Song.is_public for every scanned song.
        ignored_fields: Info fields left untouched when re-scanning an existing song
            ("cover" also disables cover generation).
        extract_folder_structure: Link songs to Folder records when the storage supports it.

    Example:
        >>> config = ScanConfiguration(owner=user, force=True, ignored_fields=frozenset({"genre"}))
    """

    owner: User
    force: bool = False
    make_public: bool = False
    ignored_fields: FrozenSet[str] = field(default_factory=frozenset)
    extract_folder_structure: bool = True

    def __post_init__(self):
        """Validate ignored field names.

        Raises:
            ValueError: If an ignored field is not a known scan field.
        """
        # Accept any iterable from callers but store a frozenset
        object.__setattr__(self, "ignored_fields", frozenset(self.ignored_fields))
        unknown = self.ignored_fields - IGNORABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown ignored fields: {', '.join(sorted(unknown))}")

    def ignores(self, name: str) -> bool:
        return name in self.ignored_fields


@dataclass
class ScannerConfig:
    """Tuning knobs for LibraryScanner.

    Attributes:
        max_workers: Files scanned in parallel, one session per file (default: 4).
        entity_cache_ttl: Seconds an artist/album resolution stays cached (default: 1800).
        cover_cache_ttl: Seconds a directory cover verdict stays cached (default: 86400).
        progress_update_interval: Log progress every N files (default: 100).
        supported_extensions: Audio file suffixes picked up by the directory walk.

    Example:
        >>> config = ScannerConfig(max_workers=8)
        >>> scanner = LibraryScanner(config=config)
    """

    max_workers: int = 4
    entity_cache_ttl: int = 30 * 60
    cover_cache_ttl: int = 24 * 60 * 60
    progress_update_interval: int = 100
    supported_extensions: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        """Validate configuration values and set computed defaults.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if self.supported_extensions is None:
            self.supported_extensions = frozenset(
                {".mp3", ".flac", ".m4a", ".aac", ".ogg", ".opus", ".wav", ".aiff", ".wma"}
            )
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.entity_cache_ttl < 0:
            raise ValueError("entity_cache_ttl must be >= 0")
        if self.cover_cache_ttl < 0:
            raise ValueError("cover_cache_ttl must be >= 0")
        if self.progress_update_interval < 1:
            raise ValueError("progress_update_interval must be >= 1")
