"""Directory cover art discovery.

Some albums ship their artwork as ``cover.jpg`` / ``folder.png`` next to the
tracks instead of (or besides) embedding it. Listing a directory for every
track is wasteful, so the verdict is cached per directory.
"""

import os
import re
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from PIL import Image, UnidentifiedImageError

from trackvault.core.cache import CacheStrategy, cache as default_cache, simple_hash

COVER_FILE_PATTERN = re.compile(r"(cov|fold)er\.(jpe?g|png)$", re.IGNORECASE)


def is_image(path: Union[str, os.PathLike]) -> bool:
    """True if Pillow can identify and verify the file as an image."""
    try:
        with Image.open(path) as img:
            img.verify()
        return True
    except (OSError, UnidentifiedImageError, SyntaxError, ValueError) as e:
        logger.debug(f"Not a usable image {path}: {e}")
        return False


class CoverResolver:
    """Finds the cover image file of a directory.

    Attributes:
        cache: Cache service holding the per-directory verdict.
        ttl: Seconds a verdict stays cached.
    """

    def __init__(self, cache: Optional[CacheStrategy] = None, ttl: int = 24 * 60 * 60):
        self.cache = cache or default_cache
        self.ttl = ttl

    def find_cover_in_directory(self, directory: Union[str, os.PathLike]) -> Optional[Path]:
        """Return the directory's cover image, or None.

        Only immediate files are considered. When several files match
        (e.g. cover.jpg and folder.jpg), the lexicographically first name
        wins; if that file is not a valid image the directory has no cover.

        Args:
            directory: Directory to look in.

        Returns:
            Path of the validated cover file, or None.
        """
        directory = os.fspath(directory)
        return self.cache.remember(
            simple_hash(f"cover:{directory}"),
            self.ttl,
            lambda: self._find(directory),
        )

    def _find(self, directory: str) -> Optional[Path]:
        try:
            matches = sorted(
                entry.name
                for entry in os.scandir(directory)
                if entry.is_file() and COVER_FILE_PATTERN.search(entry.name)
            )
        except OSError as e:
            logger.debug(f"Cannot list {directory} for cover art: {e}")
            return None

        if not matches:
            return None

        cover = Path(directory) / matches[0]
        if not is_image(cover):
            logger.warning(f"Ignoring invalid cover image {cover}")
            return None
        return cover
