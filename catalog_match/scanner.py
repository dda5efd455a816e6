from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .config import LibrarySettings
from .models import LocalFolder


@dataclass
class ArtistDirectory:
    folder: LocalFolder
    albums: List[LocalFolder]


class LibraryScanner:
    """Enumerates ``<root>/<artist>/<album>`` directories; never descends further."""

    def __init__(self, settings: LibrarySettings) -> None:
        self.settings = settings
        self._exts = {ext.lower() for ext in self.settings.include_extensions}

    def iter_artists(self) -> Iterator[ArtistDirectory]:
        for root in self.settings.roots:
            if not root.exists():
                continue
            for artist_dir in self._subdirectories(root):
                albums = [LocalFolder.from_path(path) for path in self._subdirectories(artist_dir)]
                yield ArtistDirectory(folder=LocalFolder.from_path(artist_dir), albums=albums)

    def iter_entries(self) -> Iterator[tuple[LocalFolder, List[LocalFolder]]]:
        for artist in self.iter_artists():
            yield artist.folder, artist.albums

    def audio_files(self, directory: Path) -> List[Path]:
        files: List[Path] = []
        for path in sorted(directory.rglob("*")):
            if path.is_file() and path.suffix.lower() in self._exts:
                files.append(path)
        return files

    @staticmethod
    def _subdirectories(directory: Path) -> List[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name.lower())
        except OSError:
            return []
        return [entry for entry in entries if entry.is_dir() and not entry.name.startswith(".")]
