#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tagging Orchestrator - Main orchestration class.

Provides a programmatic interface to run the pipeline per path:
    Scan -> Parse filename -> Resolve against catalog -> Write tag

Usage:
    from orchestrator import TaggingOrchestrator

    orch = TaggingOrchestrator('autotag-config.yaml')
    report = orch.scan_report('/path/to/music')
    results = orch.fetch('/path/to/music')
    orch.edit('/path/to/song.mp3', title='One More Time')
"""

import threading
from typing import Any, Callable, Dict, Iterator, Optional

from agents import (
    AudioFile, FixerAgent, MatchDecision, MatchStatus, ResolverAgent,
    ScannerAgent, TagStatus
)
from sources import CatalogSource, SpotifySource, iTunesSource

from .config import ConfigManager


# Upper bound on parallel resolutions, to stay inside catalog rate limits
MAX_WORKERS = 4

Chooser = Callable[[AudioFile, MatchDecision], Optional[Any]]


def create_source(config: ConfigManager, cancel_event: Optional[threading.Event] = None) -> CatalogSource:
    """
    Create the configured catalog source.

    Raises:
        ValueError: unknown source name or missing credentials
    """
    name = (config.primary_source or '').lower()
    retry = config.retry_settings()
    retry['cancel_event'] = cancel_event

    if name == 'spotify':
        settings = config.get_api_settings('spotify')
        return SpotifySource(
            client_id=config.spotify_client_id,
            client_secret=config.spotify_client_secret,
            market=settings.get('market'),
            limit=settings.get('limit', 10),
            rate_limit=float(settings.get('rate_limit', 0.5)),
            **retry
        )

    if name == 'itunes':
        settings = config.get_api_settings('itunes')
        return iTunesSource(
            country=settings.get('country', 'us'),
            limit=settings.get('limit', 10),
            rate_limit=float(settings.get('rate_limit', 0.5)),
            **retry
        )

    raise ValueError(f"Unknown catalog source: {config.primary_source!r} (use spotify or itunes)")


class TaggingOrchestrator:
    """
    Central orchestrator for the tagging pipeline.

    Owns the catalog source (and with it the cached access token) and hands
    it to the resolver; front ends only talk to this class.
    """

    def __init__(
        self,
        config_path: str = "autotag-config.yaml",
        source: Optional[CatalogSource] = None,
        config: Optional[ConfigManager] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config_path: Path to configuration file
            source: Catalog source to use instead of the configured one
            config: Already loaded ConfigManager (overrides config_path)
        """
        self.config = config or ConfigManager(config_path)
        self.cancel_event = threading.Event()

        # Initialize agents
        self.scanner = ScannerAgent(self.config, self.cancel_event)
        self.fixer = FixerAgent(self.config, self.cancel_event)

        self._source = source
        self._resolver: Optional[ResolverAgent] = None

        # Callbacks
        self._progress_callback: Optional[Callable] = None

    @property
    def source(self) -> CatalogSource:
        """Catalog source, created on first use (scan and edit never need one)"""
        if self._source is None:
            self._source = create_source(self.config, self.cancel_event)
        return self._source

    @property
    def resolver(self) -> ResolverAgent:
        """Resolver with the configured rename setting"""
        if self._resolver is None:
            self._resolver = self._create_resolver()
        return self._resolver

    def _create_resolver(self, rename: Optional[bool] = None) -> ResolverAgent:
        return ResolverAgent(
            self.config, self.source, fixer=self.fixer,
            cancel_event=self.cancel_event, rename=rename
        )

    def set_progress_callback(self, callback: Callable[[str, int, int], None]) -> None:
        """
        Set progress callback for UI updates.

        Args:
            callback: Function(message, current, total); total is 0 when unknown
        """
        self._progress_callback = callback

    def _progress(self, message: str, current: int = 0, total: int = 0) -> None:
        """Report progress"""
        if self._progress_callback:
            self._progress_callback(message, current, total)
        else:
            print(f"[Progress] {message} ({current}/{total})" if total else f"[Progress] {message}")

    def cancel(self) -> None:
        """Stop starting new searches and writes; writes in flight complete"""
        self.cancel_event.set()

    # ==================== Scanning ====================

    def scan(self, path) -> Iterator[AudioFile]:
        """Lazily scan a file or directory tree"""
        return self.scanner.scan(path)

    def scan_report(self, path) -> Dict[str, Any]:
        """
        Tabular report of a file or directory tree.

        Returns:
            Dictionary with one row per file and counts per classification
        """
        rows = []
        counts = {status.value: 0 for status in TagStatus}

        for audio_file in self.scan(path):
            rows.append(audio_file.to_dict())
            counts[audio_file.status.value] += 1

        return {
            'path': str(path),
            'total': len(rows),
            'counts': counts,
            'rows': rows
        }

    # ==================== Fetching ====================

    def fetch(
        self,
        path,
        chooser: Optional[Chooser] = None,
        workers: Optional[int] = None,
        rename: Optional[bool] = None
    ) -> Dict[str, Any]:
        """
        Resolve every file under path against the catalog source.

        Args:
            path: Audio file or directory
            chooser: Interactive disambiguation; called with (audio_file,
                decision) for ambiguous outcomes, returns a candidate or None
            workers: Parallel resolutions (default from config, max 4)
            rename: Rename applied files to "Artist - Title.ext" for this
                call only (default from config)

        Returns:
            Batch summary with one MatchDecision per file in 'items'

        Raises:
            ValueError: catalog source misconfigured (before any file is touched)
        """
        resolver = self.resolver if rename is None else self._create_resolver(rename)
        self.cancel_event.clear()

        workers = max(1, min(int(workers or self.config.workers), MAX_WORKERS))
        picks: Dict[int, MatchDecision] = {}

        def on_result(audio_file: AudioFile, decision: MatchDecision, index: int) -> None:
            self._progress(f"{decision.status.value}: {audio_file.filename}", index + 1)

            if chooser is None or decision.status is not MatchStatus.AMBIGUOUS or self.cancel_event.is_set():
                return

            candidate = chooser(audio_file, decision)
            if candidate is not None:
                picks[index] = resolver.accept(audio_file, candidate)

        results = resolver.process_batch(self.scan(path), callback=on_result, workers=workers)

        if picks:
            for index, decision in picks.items():
                results['items'][index] = decision
            results['counts'] = _count_statuses(results['items'])

        return results

    # ==================== Manual edit ====================

    def edit(self, path, **fields) -> AudioFile:
        """
        Write explicit field values, bypassing filename parsing and matching.

        Args:
            path: Audio file
            **fields: title, artist, album, album_artist, track_number, year,
                genre, artwork_path, rename
        """
        return self.fixer.edit(path, **fields)


def _count_statuses(items) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for decision in items:
        status = decision.status.value
        counts[status] = counts.get(status, 0) + 1
    return counts


# Convenience function
def create_orchestrator(config_path: str = "autotag-config.yaml") -> TaggingOrchestrator:
    """Create and return an orchestrator instance"""
    return TaggingOrchestrator(config_path)
