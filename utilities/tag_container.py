#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tag container reader/writer.

Reads the handful of fields the pipeline cares about (title, artist, album,
album artist, track, year, genre, presence of cover art) from MP3 (ID3v2),
FLAC (Vorbis comments) and M4A (iTunes atoms) files, and writes updates back.

Writes never touch the original file until the new tag is complete: the file
is copied to a temp file in the same directory, the copy is tagged and flushed,
and only then moved over the original with os.replace(). Frames we do not know
about are left alone by mutagen, so foreign metadata survives a write.
"""

import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mutagen import MutagenError
from mutagen.flac import FLAC, Picture
from mutagen.id3 import (
    APIC, ID3, ID3NoHeaderError, TALB, TCON, TDRC, TIT2, TPE1, TPE2, TRCK
)
from mutagen.mp4 import MP4, MP4Cover


AUDIO_EXTENSIONS = {'.mp3', '.flac', '.m4a'}

FRONT_COVER = 3


class TagError(Exception):
    """Base class for tag container failures"""


class UnreadableFile(TagError):
    """File is missing or cannot be opened"""


class UnsupportedFormat(TagError):
    """Unknown container or malformed tag"""


class TagIOError(TagError):
    """Filesystem failure while writing"""


class TagEncodeError(TagError):
    """New frame set could not be serialized"""


@dataclass
class TagSnapshot:
    """Current tag values of one file"""
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    track_number: Optional[int] = None
    year: Optional[int] = None
    genre: Optional[str] = None
    has_artwork: bool = False

    @property
    def is_complete(self) -> bool:
        """Title, artist and album are all usable"""
        return all(_present(v) for v in (self.title, self.artist, self.album))

    @property
    def is_empty(self) -> bool:
        return not any(_present(v) for v in (self.title, self.artist, self.album))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "album_artist": self.album_artist,
            "track_number": self.track_number,
            "year": self.year,
            "genre": self.genre,
            "has_artwork": self.has_artwork
        }


@dataclass
class TagUpdate:
    """
    Field set to write. Fields left as None keep their current value.
    """
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    track_number: Optional[int] = None
    year: Optional[int] = None
    genre: Optional[str] = None
    artwork: Optional[bytes] = None
    artwork_mime: Optional[str] = None

    TEXT_FIELDS = ('title', 'artist', 'album', 'album_artist', 'genre')

    @classmethod
    def from_candidate(cls, candidate, artwork: Optional[bytes] = None) -> "TagUpdate":
        """Build an update from one accepted catalog candidate"""
        return cls(
            title=candidate.title or None,
            artist=candidate.artist or None,
            album=candidate.album or None,
            album_artist=candidate.album_artist or None,
            track_number=candidate.track_number or None,
            year=candidate.year,
            genre=candidate.genre or None,
            artwork=artwork
        )

    @property
    def is_empty(self) -> bool:
        values = [getattr(self, name) for name in self.TEXT_FIELDS]
        values += [self.track_number, self.year, self.artwork]
        return all(v is None for v in values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "album_artist": self.album_artist,
            "track_number": self.track_number,
            "year": self.year,
            "genre": self.genre,
            "artwork_bytes": len(self.artwork) if self.artwork else 0
        }


# ==================== Public API ====================

def is_audio_file(path) -> bool:
    """Check extension against the supported containers"""
    return os.path.splitext(str(path))[1].lower() in AUDIO_EXTENSIONS


def detect_image_mime(data: bytes) -> str:
    """Guess image MIME type from magic bytes"""
    if data[:8] == b'\x89PNG\r\n\x1a\n':
        return 'image/png'
    return 'image/jpeg'


def read_tags(path) -> TagSnapshot:
    """
    Read the tag snapshot of one audio file.

    Raises:
        UnreadableFile: file missing or not readable
        UnsupportedFormat: unknown extension or malformed tag
    """
    path = str(path)
    reader, _ = _handlers_for(path)

    if not os.path.isfile(path) or not os.access(path, os.R_OK):
        raise UnreadableFile(f"Cannot read file: {path}")

    try:
        return reader(path)
    except MutagenError as e:
        raise UnsupportedFormat(f"Malformed tag in {path}: {e}") from e


def write_tags(path, update: TagUpdate) -> None:
    """
    Write an update into the file's tag, atomically.

    Raises:
        UnreadableFile: original missing
        UnsupportedFormat: unknown extension or malformed existing tag
        TagIOError: copy, flush or replace failed
        TagEncodeError: mutagen rejected the new values
    """
    path = str(path)
    _, writer = _handlers_for(path)

    if not os.path.isfile(path):
        raise UnreadableFile(f"Cannot read file: {path}")

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    os.close(fd)

    try:
        shutil.copy2(path, tmp_path)
        writer(tmp_path, update)
        _flush_file(tmp_path)
        os.replace(tmp_path, path)
    except MutagenError as e:
        _discard(tmp_path)
        raise TagEncodeError(f"Could not encode tag for {path}: {e}") from e
    except (ValueError, TypeError) as e:
        _discard(tmp_path)
        raise TagEncodeError(f"Invalid tag value for {path}: {e}") from e
    except OSError as e:
        _discard(tmp_path)
        raise TagIOError(f"Write failed for {path}: {e}") from e
    except BaseException:
        _discard(tmp_path)
        raise

    _flush_directory(directory)


# ==================== Helpers ====================

def _present(value) -> bool:
    return value is not None and str(value).strip() != ''


def _handlers_for(path: str):
    ext = os.path.splitext(path)[1].lower()
    if ext == '.mp3':
        return _read_mp3, _write_mp3
    if ext == '.flac':
        return _read_flac, _write_flac
    if ext == '.m4a':
        return _read_m4a, _write_m4a
    raise UnsupportedFormat(f"Unsupported audio container: {path}")


def _flush_file(path: str) -> None:
    with open(path, 'rb+') as f:
        f.flush()
        os.fsync(f.fileno())


def _flush_directory(directory: str) -> None:
    # Persists the rename itself; not possible on Windows
    if os.name != 'posix':
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _discard(tmp_path: str) -> None:
    try:
        os.unlink(tmp_path)
    except FileNotFoundError:
        pass


def _get_first(value) -> Optional[str]:
    """Get first element from list or return string"""
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_number(value) -> Optional[int]:
    """Parse '3', '3/12' or 2001-05-01 style values"""
    value = _get_first(value)
    if not value:
        return None
    value = value.split('/')[0].split('-')[0].strip()
    try:
        return int(value)
    except ValueError:
        return None


# ==================== MP3 (ID3v2) ====================

ID3_TEXT_FRAMES = {
    'title': TIT2,
    'artist': TPE1,
    'album': TALB,
    'album_artist': TPE2,
    'genre': TCON,
}


def _load_id3(path: str) -> ID3:
    try:
        return ID3(path)
    except ID3NoHeaderError:
        return ID3()


def _read_mp3(path: str) -> TagSnapshot:
    tags = _load_id3(path)
    snapshot = TagSnapshot()

    for field_name, frame_cls in ID3_TEXT_FRAMES.items():
        frame = tags.get(frame_cls.__name__)
        if frame is not None:
            setattr(snapshot, field_name, _get_first(frame.text))

    trck = tags.get('TRCK')
    if trck is not None:
        snapshot.track_number = _parse_number(trck.text)

    tdrc = tags.get('TDRC')
    if tdrc is not None:
        snapshot.year = _parse_number([str(t) for t in tdrc.text])

    snapshot.has_artwork = bool(tags.getall('APIC'))
    return snapshot


def _write_mp3(path: str, update: TagUpdate) -> None:
    tags = _load_id3(path)

    # Keep v2.3 files as v2.3 so untouched frames are re-serialized unchanged
    v2_version = 3 if tags.version[:2] == (2, 3) else 4

    for field_name, frame_cls in ID3_TEXT_FRAMES.items():
        value = getattr(update, field_name)
        if value is not None:
            tags.setall(frame_cls.__name__, [frame_cls(encoding=3, text=[value])])

    if update.track_number is not None:
        tags.setall('TRCK', [TRCK(encoding=3, text=[str(update.track_number)])])

    if update.year is not None:
        tags.setall('TDRC', [TDRC(encoding=3, text=[str(update.year)])])

    if update.artwork is not None:
        tags.delall('APIC')
        tags.add(APIC(
            encoding=3,
            mime=update.artwork_mime or detect_image_mime(update.artwork),
            type=FRONT_COVER,
            desc='Cover',
            data=update.artwork
        ))

    if v2_version == 3:
        tags.update_to_v23()
    tags.save(path, v2_version=v2_version)


# ==================== FLAC ====================

VORBIS_TEXT_FIELDS = {
    'title': 'title',
    'artist': 'artist',
    'album': 'album',
    'album_artist': 'albumartist',
    'genre': 'genre',
}


def _read_flac(path: str) -> TagSnapshot:
    audio = FLAC(path)
    snapshot = TagSnapshot(has_artwork=bool(audio.pictures))

    if audio.tags is not None:
        for field_name, key in VORBIS_TEXT_FIELDS.items():
            setattr(snapshot, field_name, _get_first(audio.tags.get(key)))
        snapshot.track_number = _parse_number(audio.tags.get('tracknumber'))
        snapshot.year = _parse_number(audio.tags.get('date'))

    return snapshot


def _write_flac(path: str, update: TagUpdate) -> None:
    audio = FLAC(path)
    if audio.tags is None:
        audio.add_tags()

    for field_name, key in VORBIS_TEXT_FIELDS.items():
        value = getattr(update, field_name)
        if value is not None:
            audio[key] = value

    if update.track_number is not None:
        audio['tracknumber'] = str(update.track_number)
    if update.year is not None:
        audio['date'] = str(update.year)

    if update.artwork is not None:
        picture = Picture()
        picture.type = FRONT_COVER
        picture.mime = update.artwork_mime or detect_image_mime(update.artwork)
        picture.desc = 'Cover'
        picture.data = update.artwork
        audio.clear_pictures()
        audio.add_picture(picture)

    audio.save()


# ==================== M4A ====================

MP4_TEXT_ATOMS = {
    'title': '\xa9nam',
    'artist': '\xa9ART',
    'album': '\xa9alb',
    'album_artist': 'aART',
    'genre': '\xa9gen',
}


def _read_m4a(path: str) -> TagSnapshot:
    audio = MP4(path)
    snapshot = TagSnapshot()

    if audio.tags:
        for field_name, atom in MP4_TEXT_ATOMS.items():
            setattr(snapshot, field_name, _get_first(audio.tags.get(atom)))

        # Track number is tuple (track, total)
        trkn = audio.tags.get('trkn', [(None, None)])[0]
        if isinstance(trkn, tuple) and trkn[0]:
            snapshot.track_number = trkn[0]

        snapshot.year = _parse_number(audio.tags.get('\xa9day'))
        snapshot.has_artwork = bool(audio.tags.get('covr'))

    return snapshot


def _write_m4a(path: str, update: TagUpdate) -> None:
    audio = MP4(path)
    if audio.tags is None:
        audio.add_tags()

    for field_name, atom in MP4_TEXT_ATOMS.items():
        value = getattr(update, field_name)
        if value is not None:
            audio.tags[atom] = [value]

    if update.track_number is not None:
        audio.tags['trkn'] = [(update.track_number, 0)]
    if update.year is not None:
        audio.tags['\xa9day'] = [str(update.year)]

    if update.artwork is not None:
        mime = update.artwork_mime or detect_image_mime(update.artwork)
        if mime == 'image/png':
            cover = MP4Cover(update.artwork, imageformat=MP4Cover.FORMAT_PNG)
        else:
            cover = MP4Cover(update.artwork, imageformat=MP4Cover.FORMAT_JPEG)
        audio.tags['covr'] = [cover]

    audio.save()
