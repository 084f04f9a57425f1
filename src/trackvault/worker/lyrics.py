"""Sidecar lyrics files (``<track>.lrc`` / ``<track>.txt`` next to the audio file)."""

import os
from pathlib import Path
from typing import Optional, Sequence, Union

from loguru import logger


class LrcReader:
    """Reads the lyrics file sharing a media file's base name, if there is one.

    Attributes:
        extensions: Lyrics suffixes in order of preference (matched case-insensitively).
    """

    def __init__(self, extensions: Sequence[str] = (".lrc", ".txt")):
        self.extensions = tuple(ext.lower() for ext in extensions)

    def try_read_for_media_file(self, media_path: Union[str, os.PathLike]) -> Optional[str]:
        """Return the sidecar lyrics for media_path, or None if absent or unreadable."""
        sidecar = self.find_for_media_file(media_path)
        if sidecar is None:
            return None

        try:
            return sidecar.read_text(encoding="utf-8-sig", errors="replace").strip() or None
        except OSError as e:
            logger.debug(f"Could not read lyrics file {sidecar}: {e}")
            return None

    def find_for_media_file(self, media_path: Union[str, os.PathLike]) -> Optional[Path]:
        media_path = Path(media_path)
        try:
            candidates = {
                entry.suffix.lower(): entry
                for entry in sorted(media_path.parent.iterdir())
                if entry.stem == media_path.stem
                and entry != media_path
                and entry.suffix.lower() in self.extensions
                and entry.is_file()
            }
        except OSError as e:
            logger.debug(f"Could not list {media_path.parent} for lyrics: {e}")
            return None

        for ext in self.extensions:
            if ext in candidates:
                return candidates[ext]
        return None
