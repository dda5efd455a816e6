from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

from mutagen import MutagenError
from mutagen.flac import FLAC
from mutagen.id3 import ID3, ID3NoHeaderError, TALB, TDRC, TPE2
from mutagen.mp4 import MP4

from .models import ResolutionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AlbumTags:
    album: Optional[str] = None
    album_artist: Optional[str] = None
    date: Optional[str] = None

    @classmethod
    def from_result(cls, result: ResolutionResult) -> Optional["AlbumTags"]:
        album = result.resolved_album
        if album is None:
            return None
        artist = result.resolved_artist
        return cls(
            album=album.name,
            album_artist=artist.name if artist else None,
            date=str(album.release_year) if album.release_year else None,
        )

    def as_map(self) -> Dict[str, Optional[str]]:
        mapping = {"album": self.album, "album_artist": self.album_artist, "date": self.date}
        return {k: v for k, v in mapping.items() if v is not None}


class TagFixer:
    """Rewrites album-level tags to match the resolved catalog release."""

    SUPPORTED_EXTS = {".mp3", ".flac", ".m4a"}

    def fix_files(self, paths: Iterable[Path], tags: AlbumTags) -> int:
        changed = 0
        for path in paths:
            if not self.diff(path, tags):
                continue
            try:
                self.apply(path, tags)
            except (MutagenError, OSError) as exc:
                logger.warning("Failed to write tags to %s: %s", path, exc)
                continue
            changed += 1
        return changed

    def diff(self, path: Path, tags: AlbumTags) -> Dict[str, Dict[str, Optional[str]]]:
        ext = path.suffix.lower()
        if ext not in self.SUPPORTED_EXTS:
            return {}
        current = self._read_tags(path, ext) or {}
        changes: Dict[str, Dict[str, Optional[str]]] = {}
        for key, expected in tags.as_map().items():
            current_value = current.get(key)
            if key == "date" and self._normalize(current_value).startswith(self._normalize(expected)):
                # Keep a fuller date ("2007-05-01") that agrees with the catalog year.
                continue
            if self._normalize(current_value) != self._normalize(expected):
                changes[key] = {"old": current_value, "new": expected}
        return changes

    def apply(self, path: Path, tags: AlbumTags) -> None:
        handlers = {
            ".mp3": self._apply_mp3,
            ".flac": self._apply_flac,
            ".m4a": self._apply_mp4,
        }
        handler = handlers.get(path.suffix.lower())
        if not handler:
            logger.debug("Skipping unsupported extension %s", path)
            return
        handler(path, tags)

    def _read_tags(self, path: Path, ext: str) -> Optional[Dict[str, Optional[str]]]:
        try:
            if ext == ".mp3":
                id3 = ID3(path)
                return {
                    "album": self._id3_text(id3, "TALB"),
                    "album_artist": self._id3_text(id3, "TPE2"),
                    "date": self._id3_text(id3, "TDRC"),
                }
            if ext == ".flac":
                audio = FLAC(path)
                return {
                    "album": audio.get("ALBUM", [None])[0],
                    "album_artist": audio.get("ALBUMARTIST", [None])[0],
                    "date": audio.get("DATE", [None])[0],
                }
            if ext == ".m4a":
                audio = MP4(path)
                return {
                    "album": self._mp4_text(audio, "\xa9alb"),
                    "album_artist": self._mp4_text(audio, "aART"),
                    "date": self._mp4_text(audio, "\xa9day"),
                }
        except ID3NoHeaderError:
            return {}
        except (MutagenError, OSError) as exc:
            logger.debug("Failed to read tags for %s: %s", path, exc)
            return None
        return None

    @staticmethod
    def _id3_text(tags: ID3, frame_id: str) -> Optional[str]:
        frame = tags.get(frame_id)
        if not frame or not frame.text:
            return None
        return str(frame.text[0])

    @staticmethod
    def _mp4_text(audio: MP4, key: str) -> Optional[str]:
        values = audio.get(key)
        if not values:
            return None
        return str(values[0])

    @staticmethod
    def _normalize(value: Optional[str]) -> str:
        if value is None:
            return ""
        return value.strip()

    def _apply_mp3(self, path: Path, tags: AlbumTags) -> None:
        try:
            id3 = ID3(path)
        except ID3NoHeaderError:
            id3 = ID3()
        for frame_cls, value in ((TALB, tags.album), (TPE2, tags.album_artist), (TDRC, tags.date)):
            if value:
                id3.setall(frame_cls.__name__, [frame_cls(encoding=3, text=value)])
        id3.save(path)

    def _apply_flac(self, path: Path, tags: AlbumTags) -> None:
        audio = FLAC(path)
        for key, value in (("ALBUM", tags.album), ("ALBUMARTIST", tags.album_artist), ("DATE", tags.date)):
            if value:
                audio[key] = value
        audio.save()

    def _apply_mp4(self, path: Path, tags: AlbumTags) -> None:
        audio = MP4(path)
        for key, value in (("\xa9alb", tags.album), ("aART", tags.album_artist), ("\xa9day", tags.date)):
            if value:
                audio[key] = [value]
        audio.save()
