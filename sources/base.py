#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Base class for catalog sources.
All sources (Spotify, iTunes) inherit from this.

A source answers two questions for the resolver:
    search(query)            -> ranked Candidate list, most relevant first
    fetch_artwork(candidate) -> raw image bytes

The resolver only ever talks to this interface, so adding a backend does not
touch matching code.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests


class SourceError(Exception):
    """Base class for catalog failures"""


class SourceUnavailable(SourceError):
    """Transport failure, server error, or repeated auth failure"""


class RateLimited(SourceError):
    """Backend kept rate limiting after all retries"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RequestCancelled(SourceError):
    """Cancel event set while a request was waiting to be retried"""


class AuthExpired(SourceError):
    """Bearer token rejected by the backend"""


class InvalidQuery(SourceError, ValueError):
    """Neither artist nor title known"""


class NotFound(SourceError):
    """Requested resource does not exist"""


@dataclass(frozen=True)
class SearchQuery:
    """What we know about the track we are looking for"""
    artist: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.artist or '').strip() and not (self.title or '').strip()

    def text(self) -> str:
        """Free-text query, artist first"""
        parts = [p.strip() for p in (self.artist, self.title) if p and p.strip()]
        return ' '.join(parts)


@dataclass
class Candidate:
    """One possible identity for a file, as reported by a source"""
    source: str
    source_id: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    track_number: Optional[int] = None
    year: Optional[int] = None
    genre: Optional[str] = None
    artwork_url: Optional[str] = None
    rank: int = 0

    def summary(self) -> str:
        """Artist - Title [Album]"""
        return (
            f"{self.artist or 'Unknown'} - {self.title or 'Unknown'} "
            f"[{self.album or 'Unknown'}]"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "source": self.source,
            "source_id": self.source_id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "album_artist": self.album_artist,
            "track_number": self.track_number,
            "year": self.year,
            "genre": self.genre,
            "artwork_url": self.artwork_url,
            "rank": self.rank
        }


class CatalogSource(ABC):
    """
    Abstract base class for catalog sources.

    Subclasses implement search() and fetch_artwork(). The HTTP helpers here
    apply the shared retry policy:
    - 429: sleep Retry-After (or default_retry_after), retry up to
      max_rate_limit_retries times, then RateLimited. A Retry-After above
      max_retry_after raises RateLimited at once.
    - connection errors, timeouts, 5xx: one retry after transport_delay,
      then SourceUnavailable

    Waits end early when cancel_event is set, and no retry is sent after it.
    """

    def __init__(
        self,
        rate_limit: float = 0.5,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_rate_limit_retries: int = 3,
        default_retry_after: float = 1.0,
        max_retry_after: float = 60.0,
        transport_delay: float = 1.0,
        cancel_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize source with rate limiting and retry policy.

        Args:
            rate_limit: Minimum seconds between requests
            session: requests.Session (or compatible) used for all calls
            timeout: Per-request timeout in seconds
            max_rate_limit_retries: Retries after a 429 before giving up
            default_retry_after: Delay when a 429 carries no Retry-After
            max_retry_after: Longest Retry-After the source will wait out
            transport_delay: Delay before the single transport retry
            cancel_event: Shared event; interrupts waits and stops retries
            sleep: Sleep function (replaced in tests; default waits on cancel_event)
        """
        self.rate_limit = rate_limit
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_rate_limit_retries = max_rate_limit_retries
        self.default_retry_after = default_retry_after
        self.max_retry_after = max_retry_after
        self.transport_delay = transport_delay
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep or self.cancel_event.wait
        self._last_request: float = 0
        self._throttle_lock = threading.Lock()

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier"""
        pass

    @abstractmethod
    def search(self, query: SearchQuery) -> List[Candidate]:
        """
        Search the catalog.

        Args:
            query: Known artist and/or title

        Returns:
            Candidates, most relevant first

        Raises:
            InvalidQuery, SourceUnavailable, RateLimited, AuthExpired
        """
        pass

    @abstractmethod
    def fetch_artwork(self, candidate: Candidate) -> bytes:
        """
        Download artwork for a candidate.

        Raises:
            NotFound, SourceUnavailable
        """
        pass

    # ==================== HTTP ====================

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Perform one logical request with the retry policy applied"""
        transport_retried = False
        rate_limit_retries = 0

        while True:
            self._rate_limit_wait()

            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                if transport_retried:
                    raise SourceUnavailable(f"{self.name} request failed: {e}") from e
                transport_retried = True
                self.log(f"Transport error, retrying once: {e}")
                self._wait_to_retry(self.transport_delay)
                continue

            if response.status_code >= 500:
                if transport_retried:
                    raise SourceUnavailable(
                        f"{self.name} server error: HTTP {response.status_code}"
                    )
                transport_retried = True
                self.log(f"Server error {response.status_code}, retrying once")
                self._wait_to_retry(self.transport_delay)
                continue

            if response.status_code == 429:
                delay = self._retry_after(response)
                if delay > self.max_retry_after:
                    raise RateLimited(
                        f"{self.name} asked to wait {delay:.0f}s "
                        f"(limit {self.max_retry_after:.0f}s)",
                        retry_after=delay
                    )
                if rate_limit_retries >= self.max_rate_limit_retries:
                    raise RateLimited(
                        f"{self.name} still rate limited after {rate_limit_retries} retries",
                        retry_after=delay
                    )
                rate_limit_retries += 1
                self.log(f"Rate limited, waiting {delay:.1f}s "
                         f"({rate_limit_retries}/{self.max_rate_limit_retries})")
                self._wait_to_retry(delay)
                continue

            return response

    def _wait_to_retry(self, delay: float) -> None:
        """Sleep before a retry; raise instead when cancelled"""
        if self.cancel_event.is_set():
            raise RequestCancelled(f"{self.name} request cancelled")
        self._sleep(delay)
        if self.cancel_event.is_set():
            raise RequestCancelled(f"{self.name} request cancelled")

    def _check(self, response: requests.Response) -> requests.Response:
        """Map error status codes onto the source error taxonomy"""
        status = response.status_code
        if status == 401:
            raise AuthExpired(f"{self.name} rejected the access token")
        if status == 404:
            raise NotFound(f"{self.name}: not found ({response.url})")
        if status >= 400:
            raise SourceUnavailable(f"{self.name} request failed: HTTP {status}")
        return response

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            return self._check(response).json()
        except ValueError as e:
            raise SourceUnavailable(f"{self.name} returned invalid JSON: {e}") from e

    def _download(self, url: Optional[str]) -> bytes:
        """Download raw bytes (artwork) from a URL"""
        if not url:
            raise NotFound(f"{self.name}: no artwork reference")
        response = self._check(self._send("GET", url))
        if not response.content:
            raise NotFound(f"{self.name}: empty artwork at {url}")
        return response.content

    def _retry_after(self, response: requests.Response) -> float:
        value = response.headers.get("Retry-After")
        try:
            delay = float(value)
        except (TypeError, ValueError):
            return self.default_retry_after
        return max(delay, 0.0)

    # ==================== Helpers ====================

    def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits"""
        with self._throttle_lock:
            if self._last_request > 0:
                elapsed = time.time() - self._last_request
                if elapsed < self.rate_limit:
                    self._sleep(self.rate_limit - elapsed)
            self._last_request = time.time()

    def _extract_year(self, date_str: Optional[str]) -> Optional[int]:
        """Extract year from date string"""
        if date_str and len(date_str) >= 4:
            try:
                return int(date_str[:4])
            except ValueError:
                pass
        return None

    def log(self, message: str) -> None:
        """Log a message"""
        print(f"[{self.name}] {message}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rate_limit={self.rate_limit})"
