"""Library scan orchestration and CLI entry point.

Walks one or more media roots, runs a FileScanner per audio file (in a thread
pool when more than one worker is configured), aggregates the per-file results
and optionally removes catalog songs whose files are gone.

Run from the project root:
    python -m trackvault.worker.scan_library <directory_path> [--force] [--prune]
"""

import argparse
import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple, Union

from loguru import logger
from sqlalchemy.orm import Session

from trackvault.core.cache import SimpleCache, cache as default_cache
from trackvault.core.config import settings
from trackvault.core.db import SessionLocal, init_db
from trackvault.core.logger import setup_logging
from trackvault.core.repository import SqlAlchemyRepository
from trackvault.core.scanner_config import IGNORABLE_FIELDS, ScanConfiguration, ScannerConfig
from trackvault.core.stats import ScanStats
from trackvault.core.values import ScanResult
from trackvault.worker.artwork import AlbumCoverWriter
from trackvault.worker.covers import CoverResolver
from trackvault.worker.media_browser import LocalStorage, MediaBrowser
from trackvault.worker.resolver import EntityResolver
from trackvault.worker.scanner import FileScanner
from trackvault.worker.tags import TagExtractor


class LibraryScanner:
    """Drives FileScanner over every audio file below the given roots.

    Each file gets its own session and FileScanner; the cache is shared so
    artists/albums named by many files are resolved once per run.

    Attributes:
        session_factory: Callable returning a new SQLAlchemy session.
        config: ScannerConfig tuning parallelism, cache TTLs and extensions.
        cache: Cache shared by all file scanners of this scanner.
        extractor: Tag extractor shared by all file scanners (stateless).
        media_root: Root used for folder structure extraction (None disables it).
        artwork_dir: Where album covers are written (None: settings.ARTWORK_DIR).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Optional[ScannerConfig] = None,
        cache: Optional[SimpleCache] = None,
        extractor: Optional[TagExtractor] = None,
        media_root: Optional[Union[str, os.PathLike]] = None,
        artwork_dir: Optional[Union[str, os.PathLike]] = None,
    ):
        self.session_factory = session_factory
        self.config = config or ScannerConfig(
            max_workers=settings.SCAN_MAX_WORKERS,
            entity_cache_ttl=settings.ENTITY_CACHE_TTL,
            cover_cache_ttl=settings.COVER_CACHE_TTL,
        )
        self.cache = cache if cache is not None else default_cache
        self.extractor = extractor or TagExtractor()
        self.media_root = media_root if media_root is not None else settings.MEDIA_PATH
        self.artwork_dir = Path(artwork_dir) if artwork_dir else None
        self._stop_requested = threading.Event()

    def stop(self) -> None:
        """Stop submitting files. Files already being scanned finish normally."""
        logger.info("Scan stop requested")
        self._stop_requested.set()

    # ========== Discovery ==========

    def gather_files(self, root: Union[str, os.PathLike]) -> List[str]:
        """All supported audio files below root, as sorted real paths.

        Hidden files and directories are skipped, unreadable directories are
        logged and skipped.
        """
        extensions = self.config.supported_extensions
        found: List[str] = []
        visited: Set[Tuple[int, int]] = set()

        def on_error(error: OSError) -> None:
            logger.warning(f"Cannot read directory {error.filename}: {error.strerror}")

        for current, dirs, files in os.walk(root, onerror=on_error, followlinks=True):
            # Symlinks may lead back to a directory already walked
            try:
                st = os.stat(current)
            except OSError as e:
                logger.warning(f"Cannot read directory {current}: {e}")
                dirs[:] = []
                continue
            if (st.st_dev, st.st_ino) in visited:
                logger.warning(f"Skipping {current}: directory already scanned (symlink loop?)")
                dirs[:] = []
                continue
            visited.add((st.st_dev, st.st_ino))

            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for name in sorted(files):
                if name.startswith("."):
                    continue
                if os.path.splitext(name)[1].lower() in extensions:
                    found.append(os.path.realpath(os.path.join(current, name)))
        return found

    # ========== Scanning ==========

    def make_file_scanner(self, repository: SqlAlchemyRepository) -> FileScanner:
        media_browser = None
        storage = LocalStorage(self.media_root)
        if self.media_root:
            media_browser = MediaBrowser(repository, self.media_root)
        return FileScanner(
            repository,
            extractor=self.extractor,
            resolver=EntityResolver(repository, self.cache, ttl=self.config.entity_cache_ttl),
            cover_resolver=CoverResolver(self.cache, ttl=self.config.cover_cache_ttl),
            cover_writer=AlbumCoverWriter(repository, self.artwork_dir),
            storage=storage,
            media_browser=media_browser,
            cache=self.cache,
        )

    def scan_file(self, path: Union[str, os.PathLike], scan_config: ScanConfiguration) -> ScanResult:
        """Scan a single file in its own session."""
        with self.session_factory() as session:
            scanner = self.make_file_scanner(SqlAlchemyRepository(session))
            try:
                scanner.set_file(path)
            except OSError as e:
                logger.warning(f"Cannot access {path}: {e}")
                return ScanResult.error(os.fspath(path), str(e))
            return scanner.scan(scan_config)

    def scan(
        self,
        roots: Union[str, os.PathLike, Sequence[Union[str, os.PathLike]]],
        scan_config: ScanConfiguration,
        prune: bool = False,
    ) -> ScanStats:
        """Scan every audio file below the roots.

        Args:
            roots: One directory or several.
            scan_config: Options passed to every FileScanner.scan().
            prune: Remove songs (then empty albums/artists) whose files were not
                found below the roots. Skipped when the scan was stopped.

        Returns:
            ScanStats aggregated from the per-file results.
        """
        if isinstance(roots, (str, os.PathLike)):
            roots = [roots]

        self._stop_requested.clear()
        stats = ScanStats()
        started = time.monotonic()

        for root in roots:
            root_path = os.path.realpath(root)
            if not os.path.isdir(root_path):
                logger.error(f"Directory not found: {root}")
                stats.add(ScanResult.error(root_path, "Directory not found"))
                continue

            files = self.gather_files(root_path)
            logger.info(
                f"Scanning {len(files)} files under {root_path} "
                f"(workers={self.config.max_workers}, force={scan_config.force})"
            )
            self._scan_files(files, scan_config, stats)

            if stats.cancelled:
                break
            if prune:
                self._prune(root_path, files, stats)

        # Drop cache entries that outlived their TTL during a long run
        self.cache.cleanup_expired()

        elapsed = time.monotonic() - started
        logger.success(f"Scan finished in {elapsed:.1f}s: {stats}")
        return stats

    def _scan_files(self, files: Iterable[str], scan_config: ScanConfiguration, stats: ScanStats) -> None:
        def scan_one(path: str) -> Optional[ScanResult]:
            if self._stop_requested.is_set():
                return None
            return self.scan_file(path, scan_config)

        def record(result: Optional[ScanResult]) -> None:
            if result is None:
                stats.cancelled = True
                return
            stats.add(result)
            if result.is_error:
                logger.warning(f"Failed: {result}")
            if stats.processed % self.config.progress_update_interval == 0:
                logger.info(f"Scanned {stats.processed} files ({stats.succeeded} updated, {stats.errors} errors)")

        if self.config.max_workers == 1:
            for path in files:
                record(scan_one(path))
                if stats.cancelled:
                    return
            return

        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="scan") as executor:
            futures = [executor.submit(scan_one, path) for path in files]
            try:
                for future in as_completed(futures):
                    record(future.result())
            except BaseException:
                # Ctrl-C or a failing record: drop queued files, let running ones finish
                self._stop_requested.set()
                executor.shutdown(wait=False, cancel_futures=True)
                raise

    def _prune(self, root: str, seen_paths: List[str], stats: ScanStats) -> None:
        with self.session_factory() as session:
            repository = SqlAlchemyRepository(session)
            stats.pruned += repository.delete_songs_not_in(root, seen_paths)
            repository.prune_empty_albums_and_artists()
        # Cached entities may point at pruned rows
        self.cache.clear()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m trackvault.worker.scan_library",
        description="Scan a directory and sync its audio files into the catalog.",
    )
    parser.add_argument("paths", nargs="+", help="Directories to scan")
    parser.add_argument("--owner", default="admin", help="Owner of newly found songs (default: admin)")
    parser.add_argument("--force", action="store_true", help="Re-read files even if unchanged")
    parser.add_argument("--public", action="store_true", help="Mark scanned songs as public")
    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        choices=sorted(IGNORABLE_FIELDS),
        metavar="FIELD",
        help="Field to keep untouched on existing songs (repeatable)",
    )
    parser.add_argument("--no-folders", action="store_true", help="Skip folder structure extraction")
    parser.add_argument("--media-root", default=None, help="Root for folder structure (default: MEDIA_PATH or the first path)")
    parser.add_argument("--workers", type=int, default=settings.SCAN_MAX_WORKERS, help="Files scanned in parallel")
    parser.add_argument("--prune", action="store_true", help="Remove songs whose files are gone")
    parser.add_argument(
        "--reset-db",
        action="store_true",
        help="Back up the database, then drop and re-create all tables before scanning",
    )
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Scan directories and sync them to the catalog. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    for path in args.paths:
        if not Path(path).exists():
            logger.error(f"Path does not exist: {path}")
            return 1

    init_db(force=args.reset_db)
    with SessionLocal() as session:
        owner = SqlAlchemyRepository(session).get_or_create_user(args.owner)

    scan_config = ScanConfiguration(
        owner=owner,
        force=args.force,
        make_public=args.public,
        ignored_fields=frozenset(args.ignore),
        extract_folder_structure=not args.no_folders,
    )
    scanner = LibraryScanner(
        config=ScannerConfig(
            max_workers=args.workers,
            entity_cache_ttl=settings.ENTITY_CACHE_TTL,
            cover_cache_ttl=settings.COVER_CACHE_TTL,
        ),
        media_root=args.media_root or settings.MEDIA_PATH or args.paths[0],
    )

    try:
        stats = scanner.scan(args.paths, scan_config, prune=args.prune)
    except KeyboardInterrupt:
        logger.warning("Scan interrupted.")
        return 130

    for path, reason in sorted(stats.errors_by_path.items()):
        logger.info(f"  {path}: {reason}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
