#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scanner Agent - Discovers audio files and classifies their tags.

Responsibilities:
- Traverse a directory tree (or accept a single file)
- Read the current tag of every supported audio file
- Classify each file as complete / incomplete / unreadable

scan() is a generator: each call re-walks the tree and nothing is cached,
so very large trees are never held in memory.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from utilities.tag_container import (
    TagError, TagSnapshot, UnsupportedFormat, is_audio_file, read_tags
)

from .base import BaseAgent


class TagStatus(Enum):
    """Tag-completeness classification"""
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    UNREADABLE = "unreadable"


@dataclass
class AudioFile:
    """Scanned audio file with a snapshot of its current tag"""
    path: str
    snapshot: Optional[TagSnapshot] = None
    status: TagStatus = TagStatus.INCOMPLETE
    error: Optional[str] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    def refresh(self) -> "AudioFile":
        """Re-read the tag (after a successful write)"""
        try:
            self.snapshot = read_tags(self.path)
            self.status = classify(self.snapshot)
            self.error = None
        except TagError as e:
            self.snapshot = None
            self.status = TagStatus.UNREADABLE
            self.error = str(e)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Report row"""
        snapshot = self.snapshot or TagSnapshot()
        return {
            "path": self.path,
            "artist": snapshot.artist,
            "title": snapshot.title,
            "album": snapshot.album,
            "has_artwork": snapshot.has_artwork,
            "status": self.status.value,
            "error": self.error
        }


def classify(snapshot: TagSnapshot) -> TagStatus:
    """Complete means title, artist and album are all present"""
    return TagStatus.COMPLETE if snapshot.is_complete else TagStatus.INCOMPLETE


class ScannerAgent(BaseAgent):
    """
    Scanner agent for discovering audio files.

    Unreadable files are reported as a classification, never as a failure
    of the scan.
    """

    @property
    def name(self) -> str:
        return "Scanner"

    def process(self, item) -> AudioFile:
        """
        Load a single audio file.

        Args:
            item: Path to an audio file

        Returns:
            AudioFile with its tag classification
        """
        path = os.path.abspath(str(item))
        return AudioFile(path=path).refresh()

    def scan(self, root) -> Iterator[AudioFile]:
        """
        Lazily yield every supported audio file under root.

        Args:
            root: Directory to walk recursively, or a single audio file

        Raises:
            FileNotFoundError: root does not exist
            UnsupportedFormat: root is a file with an unsupported extension
        """
        root = Path(root)

        if not root.exists():
            raise FileNotFoundError(f"Path not found: {root}")

        if root.is_file():
            if not is_audio_file(root):
                raise UnsupportedFormat(f"Not a supported audio file: {root}")
            yield self.process(root)
            return

        seen = set()
        for dirpath, dirnames, filenames in os.walk(root, onerror=self._walk_error):
            dirnames.sort()
            for filename in sorted(filenames):
                filepath = os.path.join(dirpath, filename)
                if not is_audio_file(filepath):
                    continue

                # One AudioFile per real file, even through symlinks
                real = os.path.realpath(filepath)
                if real in seen:
                    continue
                seen.add(real)

                yield self.process(filepath)

    def _walk_error(self, error: OSError) -> None:
        self.log_error(f"Cannot list {error.filename}: {error.strerror}")
