"""Audio tag extraction with Mutagen.

Turns one audio file into a SongScanInformation, or an ExtractionFailure when
the file cannot be used (unreadable, not audio, or without playable duration).
Three tag families are understood:

- ID3 frames (MP3, AIFF, WAV)
- MP4 atoms (M4A, AAC in MP4 containers)
- Vorbis comments (FLAC, Ogg Vorbis/Opus); other dict-like tag containers
  (APEv2, ASF) are read with the same lower-case key names.
"""

import base64
import os
import re
from typing import Any, Dict, Optional, Union

import mutagen
from loguru import logger
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from trackvault.core.values import ExtractionFailure, SongScanInformation

EMPTY_FILE = "Empty file"
UNSUPPORTED_FILE = "Unsupported file format"

_ID3_FRAMES = {
    "title": "TIT2",
    "artist": "TPE1",
    "albumartist": "TPE2",
    "album": "TALB",
    "track": "TRCK",
    "disc": "TPOS",
    "year": "TDRC",
    "genre": "TCON",
}

_MP4_ATOMS = {
    "title": "\xa9nam",
    "artist": "\xa9ART",
    "albumartist": "aART",
    "album": "\xa9alb",
    "track": "trkn",
    "disc": "disk",
    "year": "\xa9day",
    "genre": "\xa9gen",
    "lyrics": "\xa9lyr",
}

_VORBIS_KEYS = {
    "title": ("title",),
    "artist": ("artist",),
    "albumartist": ("albumartist", "album artist", "album_artist"),
    "album": ("album",),
    "track": ("tracknumber", "track"),
    "disc": ("discnumber", "disc"),
    "year": ("date", "year"),
    "genre": ("genre",),
    "lyrics": ("lyrics", "unsyncedlyrics"),
}

_YEAR_RE = re.compile(r"(\d{4})")
_NUMBER_RE = re.compile(r"\s*(\d+)")


def get_mtime(path: Union[str, os.PathLike]) -> int:
    """Modification time of path in whole seconds (the precision stored in the catalog)."""
    return int(os.stat(path).st_mtime)


def parse_number(value: Any) -> Optional[int]:
    """Parse "3", "3/12", (3, 12) or 3 into 3. Returns None when no number is present."""
    if value is None:
        return None
    if isinstance(value, tuple):
        value = value[0] if value else None
        return int(value) if value else None
    if isinstance(value, int):
        return value or None
    match = _NUMBER_RE.match(str(value))
    if not match:
        return None
    return int(match.group(1)) or None


def parse_year(value: Any) -> Optional[int]:
    """Leading four-digit year of a date tag ("2003", "2003-05-01", "2003-05")."""
    if not value:
        return None
    match = _YEAR_RE.match(str(value).strip())
    return int(match.group(1)) if match else None


class TagExtractor:
    """Reads tags and stream info from audio files. Stateless and thread-safe."""

    def extract(self, path: Union[str, os.PathLike]) -> Union[SongScanInformation, ExtractionFailure]:
        """Extract metadata from one audio file.

        Args:
            path: Path to a readable regular file.

        Returns:
            SongScanInformation on success, ExtractionFailure otherwise. The
            reason is the parser's own error text when it reported one, and
            "Empty file" when the file has no playable duration.
        """
        path = os.fspath(path)
        try:
            audio = self._load(path)
        except (mutagen.MutagenError, OSError) as e:
            logger.debug(f"Mutagen could not read {path}: {e}")
            return ExtractionFailure(str(e) or type(e).__name__)

        if audio is None:
            return ExtractionFailure(UNSUPPORTED_FILE)

        length = getattr(audio.info, "length", 0) if audio.info is not None else 0
        if not length:
            return ExtractionFailure(EMPTY_FILE)

        fields = self._read_fields(audio.tags)
        return SongScanInformation(
            path=path,
            title=fields.get("title", ""),
            artist=fields.get("artist", ""),
            albumartist=fields.get("albumartist", ""),
            album=fields.get("album", ""),
            track=parse_number(fields.get("track")),
            disc=parse_number(fields.get("disc")) or 1,
            year=parse_year(fields.get("year")),
            genre=fields.get("genre", ""),
            lyrics=fields.get("lyrics", ""),
            length=float(length),
            mtime=get_mtime(path),
            cover=self._read_cover(audio),
        )

    def _load(self, path: str):
        """Blocking mutagen parse; returns None for files mutagen does not recognize."""
        return mutagen.File(path)

    # ========== Text fields ==========

    def _read_fields(self, tags: Any) -> Dict[str, Any]:
        if tags is None:
            return {}
        if isinstance(tags, ID3):
            return self._read_id3(tags)
        if isinstance(tags, MP4Tags):
            return self._read_mp4(tags)
        return self._read_vorbis(tags)

    @staticmethod
    def _read_id3(tags: ID3) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for name, frame_id in _ID3_FRAMES.items():
            frame = tags.get(frame_id)
            if frame is not None and frame.text:
                fields[name] = str(frame.text[0]).strip()

        # TCON may hold ID3v1 references like "(17)"; .genres resolves them
        genre = tags.get("TCON")
        if genre is not None and genre.genres:
            fields["genre"] = genre.genres[0]

        lyrics = tags.getall("USLT")
        if lyrics and lyrics[0].text:
            fields["lyrics"] = lyrics[0].text.strip()
        return fields

    @staticmethod
    def _read_mp4(tags: MP4Tags) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for name, atom in _MP4_ATOMS.items():
            values = tags.get(atom)
            if not values:
                continue
            value = values[0]
            # trkn/disk hold (number, total) tuples, the others strings
            fields[name] = value if isinstance(value, tuple) else str(value).strip()
        return fields

    @staticmethod
    def _read_vorbis(tags: Any) -> Dict[str, Any]:
        lowered = {}
        for key in tags.keys():
            values = tags[key]
            if isinstance(values, (list, tuple)):
                values = values[0] if values else None
            if values is not None:
                lowered[str(key).lower()] = str(values).strip()

        fields: Dict[str, Any] = {}
        for name, candidates in _VORBIS_KEYS.items():
            for candidate in candidates:
                if lowered.get(candidate):
                    fields[name] = lowered[candidate]
                    break
        return fields

    # ========== Embedded artwork ==========

    def _read_cover(self, audio: Any) -> Optional[Dict[str, Any]]:
        """First embedded picture as {"data": bytes, "mime": str}, or None."""
        try:
            return self._find_cover(audio)
        except Exception as e:
            # A broken picture block must not cost us the rest of the tags
            logger.debug(f"Ignoring unreadable embedded artwork: {e}")
            return None

    @staticmethod
    def _find_cover(audio: Any) -> Optional[Dict[str, Any]]:
        pictures = getattr(audio, "pictures", None)  # FLAC picture blocks
        if pictures:
            return {"data": pictures[0].data, "mime": pictures[0].mime}

        tags = audio.tags
        if tags is None:
            return None

        if isinstance(tags, ID3):
            frames = tags.getall("APIC")
            if frames:
                return {"data": frames[0].data, "mime": frames[0].mime}
            return None

        if isinstance(tags, MP4Tags):
            covers = tags.get("covr")
            if covers:
                cover = covers[0]
                mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
                return {"data": bytes(cover), "mime": mime}
            return None

        # Ogg Vorbis/Opus carry FLAC picture blocks base64-encoded in a comment
        blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
        if blocks:
            picture = Picture(base64.b64decode(blocks[0]))
            return {"data": picture.data, "mime": picture.mime}
        return None
