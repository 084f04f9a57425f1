"""Statistics tracking for library scan runs.

Aggregates the per-file ScanResult objects produced by FileScanner into the
summary an operator sees at the end of a run.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict

from trackvault.core.values import ScanResult


@dataclass
class ScanStats:
    """Statistics for a library scan run.

    Attributes:
        processed: Total number of files processed (attempted).
        succeeded: Files whose catalog record was created or updated.
        skipped: Files left alone because they did not change.
        errors: Files that failed to scan.
        pruned: Catalog songs removed because their file disappeared.
        cancelled: Set when the run was stopped before all files were submitted.
        errors_by_path: Error reason per failed file.

    Example:
        >>> stats = ScanStats()
        >>> stats.add(ScanResult.success("/music/a.mp3"))
        >>> print(stats.to_dict())
        {'processed': 1, 'succeeded': 1, 'skipped': 0, 'errors': 0, 'pruned': 0}
    """

    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    errors: int = 0
    pruned: int = 0
    cancelled: bool = False
    errors_by_path: Dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, result: ScanResult) -> None:
        """Count one file outcome. Safe to call from worker threads."""
        with self._lock:
            self.processed += 1
            if result.is_success:
                self.succeeded += 1
            elif result.is_skipped:
                self.skipped += 1
            else:
                self.errors += 1
                self.errors_by_path[result.path] = result.error or "Unknown error"

    def to_dict(self) -> dict:
        """Convert stats to dictionary for reporting.

        Returns:
            Dictionary with all counters.
        """
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "errors": self.errors,
            "pruned": self.pruned,
        }

    def __str__(self) -> str:
        return (
            f"ScanStats(processed={self.processed}, succeeded={self.succeeded}, "
            f"skipped={self.skipped}, errors={self.errors}, pruned={self.pruned})"
        )
