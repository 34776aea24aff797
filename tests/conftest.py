import struct
import threading

import pytest

from orchestrator.config import ConfigManager
from sources.base import Candidate, CatalogSource
from utilities.tag_container import TagUpdate, write_tags

# =====================================================
# Audio fixtures
# =====================================================

# Silent MPEG-1 Layer III frames; mutagen's ID3 layer only needs bytes after the tag
MPEG_AUDIO = (b"\xff\xfb\x90\x64" + b"\x00" * 413) * 10

# ID3v2.4 header whose size bytes are not synchsafe
MALFORMED_ID3 = b"ID3\x04\x00\x00\xff\xff\xff\xff" + b"\x00" * 32

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def flac_bytes():
    """fLaC marker, a single STREAMINFO block (44.1 kHz, stereo, 16 bit) and frame bytes"""
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + b"\x00" * 6
        + struct.pack(">H", 44100 >> 4)
        + bytes([0x42, 0xF0, 0, 0, 0, 0])
        + b"\x00" * 16
    )
    header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    return b"fLaC" + header + streaminfo + b"\xff\xf8" + b"\x00" * 64


@pytest.fixture
def make_mp3(tmp_path):
    def _make(name="song.mp3", **fields):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(MPEG_AUDIO)
        if fields:
            write_tags(path, TagUpdate(**fields))
        return path

    return _make


@pytest.fixture
def make_flac(tmp_path):
    def _make(name="song.flac", **fields):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(flac_bytes())
        if fields:
            write_tags(path, TagUpdate(**fields))
        return path

    return _make


@pytest.fixture
def config(tmp_path):
    """Defaults only: the config file does not exist"""
    return ConfigManager(str(tmp_path / "no-config.yaml"))


# =====================================================
# Catalog fakes
# =====================================================


def make_candidate(title, artist, album="Discovery", rank=0, **extra):
    return Candidate(
        source="fake",
        source_id=f"{artist}-{title}-{rank}",
        title=title,
        artist=artist,
        album=album,
        rank=rank,
        **extra
    )


class FakeSource(CatalogSource):
    """In-memory catalog with scripted results"""

    def __init__(self, results=None, error=None, artwork=JPEG_BYTES, artwork_error=None):
        super().__init__(rate_limit=0, sleep=lambda seconds: None)
        self.results = results if results is not None else []
        self.error = error
        self.artwork = artwork
        self.artwork_error = artwork_error
        self.queries = []
        self.artwork_requests = []
        self._lock = threading.Lock()

    @property
    def name(self):
        return "fake"

    def search(self, query):
        with self._lock:
            self.queries.append(query)
        if self.error is not None:
            raise self.error
        results = self.results(query) if callable(self.results) else self.results
        return list(results)

    def fetch_artwork(self, candidate):
        self.artwork_requests.append(candidate)
        if self.artwork_error is not None:
            raise self.artwork_error
        return self.artwork


# =====================================================
# HTTP fakes
# =====================================================


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None, content=b"", url="https://fake.test/"):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.content = content
        self.url = url

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """requests.Session stand-in: scripted responses, or a handler(method, url, kwargs)"""

    def __init__(self, *responses, handler=None):
        self.responses = list(responses)
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
            if self.handler is None:
                response = self.responses.pop(0)
        if self.handler is not None:
            response = self.handler(method, url, kwargs)
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, fragment):
        return [call for call in self.calls if fragment in call[1]]


@pytest.fixture
def sleeps():
    return []
