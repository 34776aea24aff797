#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Resolver Agent - Matches audio files against a catalog source.

Responsibilities:
- Derive a search query from the filename
- Search the configured catalog source
- Score candidates against the filename guess
- Apply an unambiguous, confident match; otherwise report why not

Per file the outcome is exactly one MatchDecision:
    applied   - tag written from one candidate
    skipped   - nothing written (reason says why)
    ambiguous - nothing written, top candidates returned for a human to pick
"""

import re
import unicodedata
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sources.base import Candidate, CatalogSource, RequestCancelled, SearchQuery, SourceError
from utilities.filename_parser import ParsedGuess, parse_filename
from utilities.tag_container import TagError, TagUpdate

from .base import BaseAgent
from .fixer import FixerAgent
from .scanner import AudioFile, TagStatus


class MatchStatus(Enum):
    """Terminal state of one resolution"""
    APPLIED = "applied"
    SKIPPED = "skipped"
    AMBIGUOUS = "ambiguous"


# Skip reasons
ALREADY_COMPLETE = "already_complete"
UNREADABLE = "unreadable"
INVALID_QUERY = "invalid_query"
SOURCE_ERROR = "source_error"
NO_MATCH = "no_match"
WRITE_FAILED = "write_failed"
CANCELLED = "cancelled"
ERROR = "error"

# Score differences within this of the margin count as meeting it
MARGIN_EPSILON = 1e-9


@dataclass
class ScoredCandidate:
    """Candidate with its match score"""
    candidate: Candidate
    score: float

    def to_dict(self) -> Dict[str, Any]:
        data = self.candidate.to_dict()
        data["score"] = round(self.score, 4)
        return data


@dataclass
class MatchDecision:
    """Outcome of resolving one file"""
    path: str
    status: MatchStatus
    reason: Optional[str] = None
    candidate: Optional[Candidate] = None
    score: float = 0.0
    candidates: List[ScoredCandidate] = field(default_factory=list)
    update: Optional[TagUpdate] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "reason": self.reason,
            "candidate": self.candidate.to_dict() if self.candidate else None,
            "score": round(self.score, 4),
            "candidates": [c.to_dict() for c in self.candidates],
            "update": self.update.to_dict() if self.update else None,
            "error": self.error
        }


# ==================== Scoring ====================

_PUNCTUATION = re.compile(r'[^\w\s]|_')


def normalize_text(text: Optional[str]) -> str:
    """Casefold, strip diacritics and punctuation, collapse whitespace"""
    if not text:
        return ""

    decomposed = unicodedata.normalize('NFKD', text)
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    stripped = _PUNCTUATION.sub(' ', stripped.casefold())

    return ' '.join(stripped.split())


def similarity(local: Optional[str], remote: Optional[str]) -> float:
    """Normalized string similarity (0-1)"""
    local_norm = normalize_text(local)
    remote_norm = normalize_text(remote)

    if not local_norm or not remote_norm:
        return 0.0

    # Exact match
    if local_norm == remote_norm:
        return 1.0

    return SequenceMatcher(None, local_norm, remote_norm).ratio()


def score_candidate(guess: ParsedGuess, candidate: Candidate, title_weight: float = 0.65) -> float:
    """
    Score a candidate against the filename guess.

    Weights title over artist. With no artist in the guess the score is the
    title similarity alone. The reversed ("Title - Artist") reading of the
    filename is scored too and the better reading counts.
    """
    readings = [guess]
    swapped = guess.swapped()
    if swapped is not None:
        readings.append(swapped)

    best = 0.0
    for reading in readings:
        title_score = similarity(reading.title, candidate.title)
        if reading.artist:
            artist_score = similarity(reading.artist, candidate.artist)
            score = title_weight * title_score + (1 - title_weight) * artist_score
        else:
            score = title_score
        best = max(best, score)

    return best


def rank_candidates(
    guess: ParsedGuess,
    candidates: List[Candidate],
    title_weight: float = 0.65
) -> List[ScoredCandidate]:
    """Candidates by descending score; source rank breaks ties"""
    scored = [
        ScoredCandidate(candidate=c, score=score_candidate(guess, c, title_weight))
        for c in candidates
    ]
    return sorted(scored, key=lambda s: (-s.score, s.candidate.rank))


def build_query(guess: ParsedGuess) -> SearchQuery:
    """Query from the guess; title alone when the artist is unknown"""
    return SearchQuery(artist=guess.artist, title=guess.title)


class ResolverAgent(BaseAgent):
    """
    Resolver agent for matching files against a catalog source.

    Never writes to a file the scanner classified as complete, and never
    writes without an accepted candidate.
    """

    def __init__(
        self,
        config,
        source: CatalogSource,
        fixer: Optional[FixerAgent] = None,
        cancel_event=None,
        rename: Optional[bool] = None
    ):
        """
        Args:
            config: ConfigManager instance
            source: Catalog source used for search and artwork
            fixer: Commit path (created from config if omitted)
            cancel_event: Shared event; once set, no new search or write starts
            rename: Rename applied files (None = naming.rename_after_apply)
        """
        super().__init__(config, cancel_event)
        self.source = source
        self.fixer = fixer or FixerAgent(config, self.cancel_event)
        self.rename = rename

        # Thresholds from config
        self.accept_threshold = float(config.get('thresholds.accept', 0.85))
        self.margin = float(config.get('thresholds.margin', 0.10))
        self.title_weight = float(config.get('resolver.title_weight', 0.65))
        self.max_ambiguous = int(config.get('resolver.max_ambiguous', 5))

    @property
    def name(self) -> str:
        return "Resolver"

    def process(self, item: AudioFile) -> MatchDecision:
        """
        Resolve one scanned file.

        Args:
            item: AudioFile from the scanner

        Returns:
            MatchDecision (applied / skipped / ambiguous)
        """
        audio_file = item

        if audio_file.status is TagStatus.UNREADABLE:
            return self._skip(audio_file, UNREADABLE, audio_file.error)

        if audio_file.status is TagStatus.COMPLETE:
            return self._skip(audio_file, ALREADY_COMPLETE)

        if self.cancelled:
            return self._skip(audio_file, CANCELLED)

        guess = parse_filename(audio_file.filename)
        if guess.is_empty:
            return self._skip(audio_file, INVALID_QUERY)

        query = build_query(guess)
        self.log(f"Searching: {query.text()}")

        try:
            results = self.source.search(query)
        except RequestCancelled:
            return self._skip(audio_file, CANCELLED)
        except SourceError as e:
            self.log_error(f"Search failed for {audio_file.filename}: {e}")
            return self._skip(audio_file, SOURCE_ERROR, str(e))

        if not results:
            return self._skip(audio_file, NO_MATCH)

        ranked = rank_candidates(guess, results, self.title_weight)
        accepted, top_score = self._select(ranked)

        if accepted is None:
            self.log(f"Ambiguous: {audio_file.filename} (best {top_score:.0%})")
            return MatchDecision(
                path=audio_file.path,
                status=MatchStatus.AMBIGUOUS,
                score=top_score,
                candidates=ranked[:self.max_ambiguous]
            )

        decision = self._commit(audio_file, accepted.candidate)
        decision.score = accepted.score
        decision.candidates = ranked[:self.max_ambiguous]
        return decision

    def accept(self, audio_file: AudioFile, candidate: Candidate) -> MatchDecision:
        """
        Apply a candidate picked by the user from an ambiguous decision.

        Complete files are still refused; use the manual edit path for those.
        """
        if audio_file.status is TagStatus.COMPLETE:
            return self._skip(audio_file, ALREADY_COMPLETE)
        if audio_file.status is TagStatus.UNREADABLE:
            return self._skip(audio_file, UNREADABLE, audio_file.error)

        guess = parse_filename(audio_file.filename)
        decision = self._commit(audio_file, candidate)
        decision.score = score_candidate(guess, candidate, self.title_weight)
        return decision

    def error_result(self, item: AudioFile, error: Exception) -> MatchDecision:
        return self._skip(item, ERROR, str(error))

    # ==================== Helpers ====================

    def _select(self, ranked: List[ScoredCandidate]) -> Tuple[Optional[ScoredCandidate], float]:
        """Top candidate if confident and clearly ahead of the runner-up"""
        top = ranked[0]
        if top.score < self.accept_threshold:
            return None, top.score

        if len(ranked) > 1 and top.score - ranked[1].score < self.margin - MARGIN_EPSILON:
            return None, top.score

        return top, top.score

    def _commit(self, audio_file: AudioFile, candidate: Candidate) -> MatchDecision:
        """Fetch artwork (best effort) and write the tag"""
        artwork = self._fetch_artwork(candidate)

        if self.cancelled:
            return self._skip(audio_file, CANCELLED)

        update = TagUpdate.from_candidate(candidate, artwork=artwork)

        try:
            self.fixer.apply(audio_file, update, rename=self.rename)
        except TagError as e:
            self.log_error(f"Write failed for {audio_file.filename}: {e}")
            return self._skip(audio_file, WRITE_FAILED, str(e))

        self.log(f"Applied: {candidate.summary()}")
        return MatchDecision(
            path=audio_file.path,
            status=MatchStatus.APPLIED,
            candidate=candidate,
            update=update
        )

    def _fetch_artwork(self, candidate: Candidate) -> Optional[bytes]:
        if not candidate.artwork_url:
            return None
        try:
            return self.source.fetch_artwork(candidate)
        except SourceError as e:
            self.log(f"Artwork unavailable, writing text fields only: {e}")
            return None

    def _skip(self, audio_file: AudioFile, reason: str, error: Optional[str] = None) -> MatchDecision:
        return MatchDecision(
            path=audio_file.path,
            status=MatchStatus.SKIPPED,
            reason=reason,
            error=error
        )
