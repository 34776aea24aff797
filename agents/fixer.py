#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fixer Agent - Commits tag updates to audio files.

Responsibilities:
- Write a TagUpdate through the tag container (atomic replace)
- Refresh the file's snapshot after the write
- Manual edit path: explicit field overrides, no catalog lookup
- Optionally rename the file to "Artist - Title.ext"
"""

import os
import threading
from typing import Any, Dict, Optional

from utilities.tag_container import TagUpdate, detect_image_mime, write_tags

from .base import BaseAgent
from .scanner import AudioFile, ScannerAgent


class FixerAgent(BaseAgent):
    """
    Fixer agent for writing tags.

    The resolver hands it accepted matches; the edit command hands it
    explicit values. Both end in the same atomic write.
    """

    # Characters not allowed in filenames on at least one platform
    INVALID_CHARS = ['/', '\\', ':', '*', '?', '"', '<', '>', '|', '\0']

    # Check-then-rename is one step for every fixer in the process
    _rename_lock = threading.Lock()

    def __init__(self, config, cancel_event=None):
        super().__init__(config, cancel_event)
        self.rename_after_apply = config.get('naming.rename_after_apply', False)

    @property
    def name(self) -> str:
        return "Fixer"

    def process(self, item: Dict[str, Any]) -> AudioFile:
        """
        Apply a manual edit.

        Args:
            item: Dictionary with 'path' plus any of the TagUpdate fields,
                'artwork_path' and 'rename'

        Returns:
            Refreshed AudioFile
        """
        fields = dict(item)
        path = fields.pop('path')
        return self.edit(path, **fields)

    def apply(self, audio_file: AudioFile, update: TagUpdate, rename: Optional[bool] = None) -> AudioFile:
        """
        Write an update and refresh the snapshot.

        Raises:
            TagError: the write failed; the original file is unchanged
        """
        write_tags(audio_file.path, update)
        audio_file.refresh()

        written = [k for k, v in update.to_dict().items() if v]
        self.log(f"Updated {audio_file.filename}: {', '.join(written)}")

        if rename is None:
            rename = self.rename_after_apply

        if rename:
            # The tag is already committed; a failed rename only loses the rename
            try:
                audio_file.path = self.rename_to_tags(audio_file)
            except (OSError, ValueError) as e:
                self.log_error(f"Rename skipped for {audio_file.filename}: {e}")

        return audio_file

    def edit(
        self,
        path,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        album_artist: Optional[str] = None,
        track_number: Optional[int] = None,
        year: Optional[int] = None,
        genre: Optional[str] = None,
        artwork_path: Optional[str] = None,
        rename: Optional[bool] = None
    ) -> AudioFile:
        """
        Manual edit: write explicit values, keep everything else.

        Works on complete and incomplete files alike; this is the only
        path that overwrites a complete tag.

        Raises:
            ValueError: no field given
            OSError: artwork file cannot be read
            TagError: file unreadable or write failed
        """
        artwork = None
        artwork_mime = None
        if artwork_path:
            with open(artwork_path, 'rb') as f:
                artwork = f.read()
            artwork_mime = detect_image_mime(artwork)

        update = TagUpdate(
            title=title,
            artist=artist,
            album=album,
            album_artist=album_artist,
            track_number=track_number,
            year=year,
            genre=genre,
            artwork=artwork,
            artwork_mime=artwork_mime
        )

        if update.is_empty:
            raise ValueError("Nothing to edit: give at least one field")

        audio_file = ScannerAgent(self.config).process(path)
        return self.apply(audio_file, update, rename=rename)

    def rename_to_tags(self, audio_file: AudioFile) -> str:
        """
        Rename file to "{artist} - {title}{ext}" from its current tag.

        Returns:
            The new path (or the current one if already correct)

        Raises:
            ValueError: artist or title missing
            FileExistsError: another file already has the target name
        """
        snapshot = audio_file.snapshot
        new_name = build_filename(
            snapshot.artist if snapshot else None,
            snapshot.title if snapshot else None,
            os.path.splitext(audio_file.path)[1]
        )
        if not new_name:
            raise ValueError(f"Artist and title required to rename {audio_file.filename}")

        new_path = os.path.join(os.path.dirname(audio_file.path), new_name)

        if new_path == audio_file.path:
            return new_path

        # os.rename replaces an existing target on POSIX
        with self._rename_lock:
            if os.path.exists(new_path):
                raise FileExistsError(f"Target already exists: {new_name}")
            os.rename(audio_file.path, new_path)

        self.log(f"  Renamed: {audio_file.filename} -> {new_name}")
        return new_path


def sanitize_filename(name: str) -> str:
    """Replace characters that are invalid in filenames with '_'"""
    for char in FixerAgent.INVALID_CHARS:
        name = name.replace(char, '_')
    return name


def build_filename(artist: Optional[str], title: Optional[str], ext: str) -> Optional[str]:
    """'Artist - Title.ext', or None unless both parts are present"""
    artist = (artist or '').strip()
    title = (title or '').strip()
    if not artist or not title:
        return None
    return f"{sanitize_filename(artist)} - {sanitize_filename(title)}{ext}"
