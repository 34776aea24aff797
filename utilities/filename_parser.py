#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Filename parser - best-effort (artist, title) guess from a bare filename.

Supported patterns:
    "Artist - Title.mp3"
    "01 - Artist - Title.mp3" / "01. Artist - Title.mp3"
    "01. Title.mp3"
    "Title.mp3" (fallback: whole name is the title)

"Title - Artist" cannot be told apart from "Artist - Title" syntactically,
so callers get the reversed reading through ParsedGuess.swapped() and let
match scoring decide.
"""

import os
import re
from dataclasses import dataclass
from typing import Optional

from .tag_container import AUDIO_EXTENSIONS


TRACK_NUMBER_PREFIX = re.compile(r'^\d{1,3}[.\-_\s]+')

# Hyphen, en dash or em dash with whitespace on both sides
SEPARATOR = re.compile(r'\s+[-–—]\s+')


@dataclass(frozen=True)
class ParsedGuess:
    """Syntactic artist/title guess derived from a filename"""
    artist: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.artist and not self.title

    def swapped(self) -> Optional["ParsedGuess"]:
        """The "Title - Artist" reading, if both parts exist"""
        if self.artist and self.title:
            return ParsedGuess(artist=self.title, title=self.artist)
        return None


def parse_filename(filename: str) -> ParsedGuess:
    """
    Parse a filename (with or without extension) into a ParsedGuess.

    Never fails; returns an empty guess when nothing usable remains.
    """
    name = os.path.basename(filename or '')
    stem, ext = os.path.splitext(name)
    if ext.lower() in AUDIO_EXTENSIONS:
        name = stem

    name = _clean(name)
    if not name:
        return ParsedGuess()

    stripped = TRACK_NUMBER_PREFIX.sub('', name, count=1)
    if stripped:
        name = stripped

    parts = SEPARATOR.split(name, maxsplit=1)
    if len(parts) == 2:
        artist, title = _clean(parts[0]), _clean(parts[1])
        if artist and title:
            return ParsedGuess(artist=artist, title=title)
        name = artist or title

    return ParsedGuess(title=name or None)


def _clean(text: str) -> str:
    """Underscores to spaces, collapse whitespace"""
    return ' '.join(text.replace('_', ' ').split())
