import pytest

from agents.resolver import (
    ResolverAgent,
    ScoredCandidate,
    MatchStatus,
    normalize_text,
    rank_candidates,
    score_candidate,
    similarity,
)
from agents.scanner import ScannerAgent, TagStatus
from conftest import FakeSource, MALFORMED_ID3, make_candidate
from sources.base import NotFound, RequestCancelled, SourceUnavailable
from utilities.filename_parser import ParsedGuess
from utilities.tag_container import TagIOError, read_tags

# =====================================================
# Helpers
# =====================================================


def make_resolver(config, source):
    return ResolverAgent(config, source)


def scanned(config, path):
    return ScannerAgent(config).process(path)


ONE_MORE_TIME = make_candidate("One More Time", "Daft Punk", album="Discovery",
                               track_number=1, year=2001, genre="House",
                               artwork_url="https://img.test/discovery.jpg")

# =====================================================
# Scoring
# =====================================================


def test_normalize_text_folds_case_accents_and_punctuation():
    assert normalize_text("Beyoncé") == "beyonce"
    assert normalize_text("  AC/DC!!  ") == "ac dc"
    assert normalize_text("Don't_Stop") == "don t stop"
    assert normalize_text(None) == ""


def test_similarity_bounds():
    assert similarity("Daft Punk", "daft punk") == 1.0
    assert similarity("", "Daft Punk") == 0.0
    assert 0.0 < similarity("Daft Punk", "Daft Pank") < 1.0


def test_exact_match_scores_one():
    guess = ParsedGuess(artist="Daft Punk", title="One More Time")
    assert score_candidate(guess, ONE_MORE_TIME) == pytest.approx(1.0)


def test_score_improves_with_closer_title():
    guess = ParsedGuess(artist="Daft Punk", title="One More Time")
    far = make_candidate("Around the World", "Daft Punk")
    near = make_candidate("One More Time (Radio Edit)", "Daft Punk")
    assert score_candidate(guess, near) > score_candidate(guess, far)
    assert score_candidate(guess, ONE_MORE_TIME) > score_candidate(guess, near)


def test_title_outweighs_artist():
    guess = ParsedGuess(artist="Daft Punk", title="One More Time")
    right_title = make_candidate("One More Time", "Someone Else")
    right_artist = make_candidate("Something Else", "Daft Punk")
    assert score_candidate(guess, right_title) > score_candidate(guess, right_artist)


def test_title_only_guess_scores_title_alone():
    guess = ParsedGuess(title="One More Time")
    assert score_candidate(guess, make_candidate("One More Time", "Anyone")) == pytest.approx(1.0)


def test_swapped_reading_is_scored():
    guess = ParsedGuess(artist="One More Time", title="Daft Punk")
    assert score_candidate(guess, ONE_MORE_TIME) == pytest.approx(1.0)


def test_rank_candidates_orders_by_score_then_rank():
    guess = ParsedGuess(artist="Daft Punk", title="One More Time")
    a = make_candidate("One More Time", "Daft Punk", album="Discovery", rank=1)
    b = make_candidate("One More Time", "Daft Punk", album="Alive 2007", rank=0)
    c = make_candidate("Digital Love", "Daft Punk", rank=2)

    ranked = rank_candidates(guess, [c, a, b])
    assert [s.candidate for s in ranked] == [b, a, c]


# =====================================================
# process: guards
# =====================================================


def test_complete_file_is_never_searched_or_written(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3", title="OMT", artist="DP", album="D")
    before = path.read_bytes()
    source = FakeSource([ONE_MORE_TIME])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.SKIPPED
    assert decision.reason == "already_complete"
    assert source.queries == []
    assert path.read_bytes() == before


def test_unreadable_file_is_skipped(config, tmp_path):
    path = tmp_path / "Daft Punk - One More Time.mp3"
    path.write_bytes(MALFORMED_ID3)
    source = FakeSource([ONE_MORE_TIME])

    audio_file = scanned(config, path)
    assert audio_file.status is TagStatus.UNREADABLE

    decision = make_resolver(config, source).process(audio_file)
    assert decision.reason == "unreadable"
    assert source.queries == []


def test_empty_guess_makes_no_catalog_call(config, make_mp3):
    path = make_mp3("___.mp3")
    source = FakeSource([ONE_MORE_TIME])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.SKIPPED
    assert decision.reason == "invalid_query"
    assert source.queries == []


def test_cancelled_before_search(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([ONE_MORE_TIME])
    resolver = make_resolver(config, source)
    resolver.cancel_event.set()

    decision = resolver.process(scanned(config, path))

    assert decision.reason == "cancelled"
    assert source.queries == []


# =====================================================
# process: outcomes
# =====================================================


def test_confident_match_is_applied(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([ONE_MORE_TIME, make_candidate("Around the World", "Daft Punk", rank=1)])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.APPLIED
    assert decision.candidate is ONE_MORE_TIME
    assert decision.score == pytest.approx(1.0)
    assert source.queries[0].artist == "Daft Punk"
    assert source.queries[0].title == "One More Time"

    snapshot = read_tags(path)
    assert snapshot.title == "One More Time"
    assert snapshot.artist == "Daft Punk"
    assert snapshot.album == "Discovery"
    assert snapshot.track_number == 1
    assert snapshot.year == 2001
    assert snapshot.genre == "House"
    assert snapshot.has_artwork is True


def test_applied_update_comes_from_one_candidate(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    decision = make_resolver(config, FakeSource([ONE_MORE_TIME])).process(scanned(config, path))

    assert decision.update.title == ONE_MORE_TIME.title
    assert decision.update.album == ONE_MORE_TIME.album
    assert decision.update.year == ONE_MORE_TIME.year


def test_close_candidates_are_ambiguous_and_nothing_is_written(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    before = path.read_bytes()
    source = FakeSource([
        make_candidate("One More Time", "Daft Punk", album="Discovery", rank=0),
        make_candidate("One More Time", "Daft Punk", album="Alive 1997", rank=1),
    ])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.AMBIGUOUS
    assert len(decision.candidates) == 2
    assert decision.candidate is None
    assert path.read_bytes() == before


def test_gap_equal_to_margin_is_accepted(config):
    resolver = make_resolver(config, FakeSource())
    top = ScoredCandidate(ONE_MORE_TIME, 1.0)
    runner_up = ScoredCandidate(make_candidate("One More Time", "Daft Punk", album="Alive 1997"), 0.9)

    accepted, score = resolver._select([top, runner_up])

    assert accepted is top
    assert score == 1.0


def test_gap_below_margin_is_ambiguous(config):
    resolver = make_resolver(config, FakeSource())
    top = ScoredCandidate(ONE_MORE_TIME, 1.0)
    runner_up = ScoredCandidate(make_candidate("One More Time", "Daft Punk", album="Alive 1997"), 0.91)

    accepted, _ = resolver._select([top, runner_up])

    assert accepted is None


def test_low_score_is_ambiguous(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([make_candidate("Harder Better Faster Stronger", "Kanye West")])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.AMBIGUOUS
    assert decision.score < 0.85


def test_ambiguous_list_is_capped(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([make_candidate("One More Time", "Daft Punk", album=f"Album {i}", rank=i)
                         for i in range(8)])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.AMBIGUOUS
    assert len(decision.candidates) == 5


def test_no_results_is_skipped(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    decision = make_resolver(config, FakeSource([])).process(scanned(config, path))
    assert decision.status is MatchStatus.SKIPPED
    assert decision.reason == "no_match"


def test_source_error_is_skipped_with_detail(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    before = path.read_bytes()
    source = FakeSource(error=SourceUnavailable("catalog down"))

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.reason == "source_error"
    assert "catalog down" in decision.error
    assert path.read_bytes() == before


def test_search_cancelled_during_retry_is_cancelled(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource(error=RequestCancelled("fake request cancelled"))

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.SKIPPED
    assert decision.reason == "cancelled"


def test_artwork_failure_still_writes_text(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([ONE_MORE_TIME], artwork_error=NotFound("gone"))

    decision = make_resolver(config, source).process(scanned(config, path))

    assert decision.status is MatchStatus.APPLIED
    snapshot = read_tags(path)
    assert snapshot.album == "Discovery"
    assert snapshot.has_artwork is False


def test_candidate_without_artwork_skips_download(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    source = FakeSource([make_candidate("One More Time", "Daft Punk")])

    make_resolver(config, source).process(scanned(config, path))

    assert source.artwork_requests == []


def test_write_failure_is_skipped(config, make_mp3, monkeypatch):
    path = make_mp3("Daft Punk - One More Time.mp3")

    def broken_write(path, update):
        raise TagIOError("read-only filesystem")

    monkeypatch.setattr("agents.fixer.write_tags", broken_write)

    decision = make_resolver(config, FakeSource([ONE_MORE_TIME])).process(scanned(config, path))

    assert decision.status is MatchStatus.SKIPPED
    assert decision.reason == "write_failed"
    assert "read-only" in decision.error


def test_reversed_filename_still_matches(config, make_mp3):
    path = make_mp3("One More Time - Daft Punk.mp3")
    decision = make_resolver(config, FakeSource([ONE_MORE_TIME])).process(scanned(config, path))
    assert decision.status is MatchStatus.APPLIED


def test_title_only_filename_searches_by_title(config, make_mp3):
    path = make_mp3("05. One More Time.mp3")
    source = FakeSource([ONE_MORE_TIME])

    decision = make_resolver(config, source).process(scanned(config, path))

    assert source.queries[0].artist is None
    assert source.queries[0].title == "One More Time"
    assert decision.status is MatchStatus.APPLIED


# =====================================================
# accept
# =====================================================


def test_accept_applies_picked_candidate(config, make_mp3):
    path = make_mp3("Daft Punk - One More Time.mp3")
    resolver = make_resolver(config, FakeSource())
    picked = make_candidate("One More Time", "Daft Punk", album="Alive 1997")

    decision = resolver.accept(scanned(config, path), picked)

    assert decision.status is MatchStatus.APPLIED
    assert read_tags(path).album == "Alive 1997"


def test_accept_refuses_complete_file(config, make_mp3):
    path = make_mp3("x.mp3", title="T", artist="A", album="B")
    before = path.read_bytes()

    decision = make_resolver(config, FakeSource()).accept(scanned(config, path), ONE_MORE_TIME)

    assert decision.reason == "already_complete"
    assert path.read_bytes() == before


# =====================================================
# process_batch
# =====================================================


def test_batch_isolates_unexpected_errors(config, make_mp3):
    good = make_mp3("Daft Punk - One More Time.mp3")
    bad = make_mp3("Daft Punk - Crash.mp3")

    def results(query):
        if query.title == "Crash":
            raise RuntimeError("boom")
        return [ONE_MORE_TIME]

    resolver = make_resolver(config, FakeSource(results))
    summary = resolver.process_batch([scanned(config, bad), scanned(config, good)])

    assert summary["total"] == 2
    assert summary["counts"] == {"skipped": 1, "applied": 1}
    assert summary["items"][0].reason == "error"
    assert "boom" in summary["items"][0].error


def test_exact_artist_and_title_outranks_title_only_match():
    guess = ParsedGuess(artist="Daft Punk", title="One More Time")
    cover = make_candidate("One More Time", "Tribute Band", rank=0)

    ranked = rank_candidates(guess, [cover, ONE_MORE_TIME])

    assert ranked[0].candidate is ONE_MORE_TIME


# =====================================================
# End to end
# =====================================================


def test_directory_scan_then_resolve_keeps_unrelated_frames(config, make_mp3, tmp_path):
    from mutagen.id3 import ID3, TXXX

    path = make_mp3("Daft Punk - One More Time.mp3")
    tags = ID3()
    tags.add(TXXX(encoding=3, desc="DJ Notes", text=["peak time"]))
    tags.save(str(path))

    source = FakeSource([make_candidate("One More Time", "Daft Punk", album="Discovery")])
    resolver = make_resolver(config, source)
    summary = resolver.process_batch(ScannerAgent(config).scan(tmp_path))

    assert summary["counts"] == {"applied": 1}
    snapshot = read_tags(path)
    assert (snapshot.title, snapshot.artist, snapshot.album) == ("One More Time", "Daft Punk", "Discovery")
    [notes] = ID3(str(path)).getall("TXXX")
    assert (notes.desc, notes.text) == ("DJ Notes", ["peak time"])
