#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spotify Web API adapter.
Primary source - largest catalog, good track-level metadata and artwork.

API Documentation:
https://developer.spotify.com/documentation/web-api

Auth: client credentials flow. The bearer token is cached with its expiry
and shared by every search made through this instance; refresh is
serialized so concurrent callers never run two exchanges for one expiry.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .base import (
    AuthExpired, CatalogSource, Candidate, InvalidQuery, SearchQuery,
    SourceError, SourceUnavailable
)


@dataclass
class AccessToken:
    """Bearer token with absolute expiry (epoch seconds)"""
    value: str
    expires_at: float

    # Seconds before expires_at at which the token is already considered stale
    EXPIRY_SKEW = 60.0

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at - self.EXPIRY_SKEW


class SpotifySource(CatalogSource):
    """
    Spotify Web API catalog source.

    Requires client_id and client_secret from Spotify Developer Dashboard.
    """

    TOKEN_URL = "https://accounts.spotify.com/api/token"
    API_URL = "https://api.spotify.com/v1"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        market: Optional[str] = None,
        limit: int = 10,
        clock: Callable[[], float] = time.time,
        **kwargs
    ):
        """
        Initialize Spotify source.

        Args:
            client_id: Spotify API client ID (or SPOTIFY_CLIENT_ID env var)
            client_secret: Spotify API client secret (or SPOTIFY_CLIENT_SECRET env var)
            market: Optional ISO country code to restrict results
            limit: Search page size (max 50)
            clock: Time source for token expiry (replaced in tests)
            **kwargs: Rate limit / retry settings for CatalogSource
        """
        super().__init__(**kwargs)

        # Get credentials from args or environment
        self.client_id = client_id or os.environ.get("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.environ.get("SPOTIFY_CLIENT_SECRET")

        if not self.client_id or not self.client_secret:
            raise ValueError(
                "Spotify credentials required. Set SPOTIFY_CLIENT_ID and "
                "SPOTIFY_CLIENT_SECRET environment variables or add them to credentials.yaml."
            )

        self.market = market
        self.limit = max(1, min(int(limit), 50))
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._token_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "spotify"

    def search(self, query: SearchQuery) -> List[Candidate]:
        """
        Search for tracks by artist and/or title.

        Args:
            query: Known artist and/or title

        Returns:
            Candidates in Spotify's relevance order
        """
        if query.is_empty:
            raise InvalidQuery("Search needs an artist or a title")

        params = {
            "q": query.text(),
            "type": "track",
            "limit": self.limit
        }
        if self.market:
            params["market"] = self.market

        data = self._api_get("/search", params)

        candidates = []
        for item in data.get("tracks", {}).get("items", []) or []:
            candidate = self._convert_track(item, rank=len(candidates))
            if candidate is not None:
                candidates.append(candidate)

        return candidates

    def fetch_artwork(self, candidate: Candidate) -> bytes:
        """Download the album image referenced by a candidate"""
        return self._download(candidate.artwork_url)

    # ==================== Token lifecycle ====================

    def access_token(self, stale: Optional[str] = None) -> str:
        """
        Return a valid bearer token, exchanging credentials if needed.

        Args:
            stale: Token the caller just saw rejected. If another thread
                already replaced it, the replacement is reused.
        """
        with self._token_lock:
            token = self._token
            if token is not None and token.value != stale and token.is_valid(self._clock()):
                return token.value

            self._token = self._request_token()
            return self._token.value

    def _request_token(self) -> AccessToken:
        """Client credentials exchange"""
        self.log("Requesting access token")
        response = self._send(
            "POST",
            self.TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret)
        )

        if response.status_code in (400, 401):
            raise SourceUnavailable(
                "Spotify rejected the client credentials. Check client_id and client_secret."
            )
        data = self._json(response)

        value = data.get("access_token")
        if not value:
            raise SourceUnavailable("Spotify token response had no access_token")

        expires_in = float(data.get("expires_in", 3600))
        return AccessToken(value=value, expires_at=self._clock() + expires_in)

    def _api_get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Authenticated GET; refreshes the token at most once per call"""
        url = f"{self.API_URL}{path}"
        token = self.access_token()

        try:
            return self._json(self._send("GET", url, params=params, headers=self._auth(token)))
        except AuthExpired:
            self.log("Access token rejected, refreshing")
            token = self.access_token(stale=token)

        try:
            return self._json(self._send("GET", url, params=params, headers=self._auth(token)))
        except AuthExpired as e:
            raise SourceUnavailable("Spotify rejected a freshly issued token") from e

    def _auth(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    # ==================== Mapping ====================

    def _convert_track(self, item: Dict[str, Any], rank: int) -> Optional[Candidate]:
        """Normalize one search result; None if it has neither artist nor title"""
        title = (item.get("name") or "").strip()
        artists = [a.get("name") for a in item.get("artists", []) if a.get("name")]

        if not title and not artists:
            return None

        album = item.get("album") or {}

        # Get cover art URL (largest image)
        images = album.get("images") or []
        artwork_url = None
        if images:
            largest = max(images, key=lambda img: img.get("width") or 0)
            artwork_url = largest.get("url")

        album_artists = [a.get("name") for a in album.get("artists", []) if a.get("name")]

        return Candidate(
            source=self.name,
            source_id=item.get("id") or "",
            title=title or None,
            artist=", ".join(artists) or None,
            album=album.get("name") or None,
            album_artist=(album_artists or artists or [None])[0],
            track_number=item.get("track_number"),
            year=self._extract_year(album.get("release_date")),
            artwork_url=artwork_url,
            rank=rank
        )


# Quick test
if __name__ == "__main__":
    # Test requires SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET env vars
    try:
        source = SpotifySource()
        print("Testing Spotify API...")
        print()

        results = source.search(SearchQuery(artist="Daft Punk", title="One More Time"))
        print(f"Found {len(results)} results for 'Daft Punk One More Time'")
        for candidate in results[:5]:
            print(f"  {candidate.rank}. {candidate.summary()}")

    except ValueError as e:
        print(f"Configuration error: {e}")
    except SourceError as e:
        print(f"Source error: {e}")
