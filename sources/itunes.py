#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
iTunes Search API adapter.
Free, no authentication required.

API Documentation:
https://developer.apple.com/library/archive/documentation/AudioVideo/Conceptual/iTuneSearchAPI/

Rate Limits: ~20 requests per minute recommended
"""

from typing import Any, Dict, List, Optional

from .base import CatalogSource, Candidate, InvalidQuery, SearchQuery


class iTunesSource(CatalogSource):
    """
    iTunes Search API catalog source.

    Provides track metadata, genre and cover art URLs.
    No authentication required.
    """

    BASE_URL = "https://itunes.apple.com"

    def __init__(self, country: str = "us", limit: int = 10, artwork_size: int = 600, **kwargs):
        """
        Initialize iTunes source.

        Args:
            country: Two-letter country code for regional content
            limit: Search page size (max 200)
            artwork_size: Edge length of the requested artwork in pixels
            **kwargs: Rate limit / retry settings for CatalogSource
        """
        super().__init__(**kwargs)
        self.country = country
        self.limit = max(1, min(int(limit), 200))
        self.artwork_size = artwork_size

    @property
    def name(self) -> str:
        return "itunes"

    def search(self, query: SearchQuery) -> List[Candidate]:
        """
        Search for songs by artist and/or title.

        Args:
            query: Known artist and/or title

        Returns:
            Candidates sorted by iTunes relevance
        """
        if query.is_empty:
            raise InvalidQuery("Search needs an artist or a title")

        params = {
            "term": query.text(),
            "entity": "song",
            "country": self.country,
            "limit": self.limit
        }

        data = self._json(self._send("GET", f"{self.BASE_URL}/search", params=params))

        candidates = []
        for item in data.get("results", []):
            if item.get("wrapperType", "track") != "track":
                continue
            candidate = self._convert_track(item, rank=len(candidates))
            if candidate is not None:
                candidates.append(candidate)

        return candidates

    def fetch_artwork(self, candidate: Candidate) -> bytes:
        """Download cover art for a candidate"""
        return self._download(candidate.artwork_url)

    def _convert_track(self, item: Dict[str, Any], rank: int) -> Optional[Candidate]:
        title = (item.get("trackName") or "").strip()
        artist = (item.get("artistName") or "").strip()

        if not title and not artist:
            return None

        return Candidate(
            source=self.name,
            source_id=str(item.get("trackId") or ""),
            title=title or None,
            artist=artist or None,
            album=item.get("collectionName") or None,
            album_artist=item.get("collectionArtistName") or artist or None,
            track_number=item.get("trackNumber"),
            year=self._extract_year(item.get("releaseDate")),
            genre=item.get("primaryGenreName") or None,
            artwork_url=self._get_large_artwork(item.get("artworkUrl100")),
            rank=rank
        )

    def _get_large_artwork(self, url: Optional[str]) -> Optional[str]:
        """
        Convert thumbnail URL to larger artwork.

        iTunes returns 100x100 by default, but supports up to 3000x3000.
        """
        if url:
            size = self.artwork_size
            return url.replace("100x100bb", f"{size}x{size}bb")
        return None


# Quick test
if __name__ == "__main__":
    source = iTunesSource()

    print("Testing iTunes Search API...")
    print()

    results = source.search(SearchQuery(artist="Daft Punk", title="One More Time"))
    print(f"Found {len(results)} results for 'Daft Punk One More Time'")

    for candidate in results[:5]:
        print(f"  {candidate.rank}. {candidate.summary()} ({candidate.genre})")
