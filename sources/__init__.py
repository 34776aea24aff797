# Catalog Sources
# Adapters for Spotify, iTunes behind one search/fetch_artwork interface

from .base import (
    CatalogSource,
    Candidate,
    SearchQuery,
    SourceError,
    SourceUnavailable,
    RateLimited,
    RequestCancelled,
    AuthExpired,
    InvalidQuery,
    NotFound
)
from .spotify import SpotifySource
from .itunes import iTunesSource

__all__ = [
    'CatalogSource',
    'Candidate',
    'SearchQuery',
    'SourceError',
    'SourceUnavailable',
    'RateLimited',
    'RequestCancelled',
    'AuthExpired',
    'InvalidQuery',
    'NotFound',
    'SpotifySource',     # Priority 1 - largest catalog, needs credentials
    'iTunesSource'       # Priority 2 - no credentials
]
