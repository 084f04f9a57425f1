"""Album artwork storage.

Covers are stored under settings.ARTWORK_DIR as ``<sha1>.<ext>`` (the same
image used by several albums is stored once) together with a small JPEG
thumbnail ``<sha1>_thumb.jpg``. The album row only keeps the file name.
"""

import hashlib
import os
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from PIL import Image

from trackvault.core.config import settings
from trackvault.core.models import Album
from trackvault.core.repository import Repository

THUMBNAIL_SIZE = 48

_EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "GIF": "gif", "WEBP": "webp", "BMP": "bmp"}


class AlbumCoverWriter:
    """Writes album cover images and records them on the album.

    Attributes:
        repository: Store the cover filename is written to.
        artwork_dir: Directory holding cover files and thumbnails.
    """

    def __init__(self, repository: Repository, artwork_dir: Optional[Path] = None):
        self.repository = repository
        self.artwork_dir = Path(artwork_dir or settings.ARTWORK_DIR)

    def write_album_cover(self, album: Album, source: Union[bytes, str, os.PathLike]) -> str:
        """Store an image as the album's cover.

        Args:
            album: Album receiving the cover.
            source: Raw image bytes (embedded artwork) or path to an image file.

        Returns:
            The stored cover filename.

        Raises:
            OSError: If the image cannot be read or written.
            PIL.UnidentifiedImageError: If the data is not an image.
        """
        data = source if isinstance(source, bytes) else Path(source).read_bytes()

        with Image.open(BytesIO(data)) as img:
            extension = _EXTENSIONS.get(img.format or "", "jpg")
            digest = hashlib.sha1(data).hexdigest()
            filename = f"{digest}.{extension}"

            self.artwork_dir.mkdir(parents=True, exist_ok=True)
            target = self.artwork_dir / filename
            if not target.exists():
                target.write_bytes(data)
            self._write_thumbnail(img, self.artwork_dir / f"{digest}_thumb.jpg")

        self.repository.set_album_cover(album.id, filename)
        album.cover = filename
        logger.info(f"Cover for album {album.name!r} stored as {filename}")
        return filename

    @staticmethod
    def _write_thumbnail(img: Image.Image, target: Path) -> None:
        if target.exists():
            return
        thumb = img.convert("RGB")
        thumb.thumbnail((THUMBNAIL_SIZE, THUMBNAIL_SIZE), Image.Resampling.LANCZOS)
        thumb.save(target, format="JPEG", quality=85)
