#!/usr/bin/env python3
"""
Audio Tagging CLI

Fills in missing tags of audio files from a remote catalog.

Usage:
    python cli.py <command> [options]

Commands:
    scan <path>              Report tag completeness of every audio file
    fetch <path>             Look up incomplete files and write confident matches
    edit <file>              Write explicit tag values to one file
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))


def _truncate(value, width):
    text = '' if value is None else str(value)
    return text if len(text) <= width else text[:width - 1] + '~'


def cmd_scan(args, orchestrator):
    """Scan files and print the tag report."""
    report = orchestrator.scan_report(args.path)

    root = os.path.abspath(args.path)
    if not os.path.isdir(root):
        root = os.path.dirname(root)

    print(f"{'STATUS':<11} {'ARTIST':<24} {'TITLE':<30} {'ALBUM':<24} PATH")
    for row in report['rows']:
        print(
            f"{row['status']:<11} {_truncate(row['artist'], 24):<24} "
            f"{_truncate(row['title'], 30):<30} {_truncate(row['album'], 24):<24} "
            f"{os.path.relpath(row['path'], root)}"
        )

    counts = report['counts']
    print(f"\n=== Scan Results ===")
    print(f"Files: {report['total']}")
    for status, count in counts.items():
        print(f"{status.capitalize()}: {count}")


def choose_candidate(audio_file, decision):
    """Ask the user to pick one of the ambiguous candidates (None = skip)."""
    print(f"\n{audio_file.filename}: no confident match")
    for i, scored in enumerate(decision.candidates, 1):
        print(f"  [{i}] {scored.score:.0%}  {scored.candidate.summary()}")

    while True:
        answer = input("Pick a number, or Enter to skip: ").strip()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(decision.candidates):
            return decision.candidates[int(answer) - 1].candidate
        print("Invalid choice.")


def cmd_fetch(args, orchestrator):
    """Resolve incomplete files against the catalog."""
    orchestrator.set_progress_callback(lambda message, current, total: None)

    results = orchestrator.fetch(
        args.path,
        chooser=choose_candidate if args.interactive else None,
        workers=args.workers,
        rename=True if args.rename else None
    )

    for decision in results['items']:
        detail = decision.reason or ''
        if decision.candidate:
            detail = decision.candidate.summary()
        elif decision.candidates:
            detail = f"{len(decision.candidates)} candidates, best {decision.score:.0%}"
        print(f"{decision.status.value:<10} {Path(decision.path).name}  {detail}")

    print(f"\n=== Fetch Results ===")
    print(f"Files: {results['total']}")
    for status, count in sorted(results['counts'].items()):
        print(f"{status.capitalize()}: {count}")
    if results['cancelled']:
        print("(Cancelled - remaining files were not processed)")


def cmd_edit(args, orchestrator):
    """Write explicit tag values."""
    audio_file = orchestrator.edit(
        args.file,
        title=args.title,
        artist=args.artist,
        album=args.album,
        album_artist=args.album_artist,
        track_number=args.track,
        year=args.year,
        genre=args.genre,
        artwork_path=args.artwork,
        rename=True if args.rename else None
    )

    row = audio_file.to_dict()
    print(f"{row['status']}: {row['artist']} - {row['title']} ({row['album']})")
    print(f"File: {audio_file.path}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='autotag',
        description='Audio Tagging CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--config', default='autotag-config.yaml', help='Configuration file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # scan command
    scan_parser = subparsers.add_parser('scan', help='Report tag completeness')
    scan_parser.add_argument('path', help='File or directory to scan')
    scan_parser.set_defaults(func=cmd_scan)

    # fetch command
    fetch_parser = subparsers.add_parser('fetch', help='Fill missing tags from the catalog')
    fetch_parser.add_argument('path', help='File or directory to process')
    fetch_parser.add_argument('--interactive', action='store_true', help='Pick a candidate when the match is ambiguous')
    fetch_parser.add_argument('--workers', type=int, help='Parallel lookups (max 4)')
    fetch_parser.add_argument('--rename', action='store_true', help='Rename to "Artist - Title" after writing')
    fetch_parser.set_defaults(func=cmd_fetch)

    # edit command
    edit_parser = subparsers.add_parser('edit', help='Write tag values to one file')
    edit_parser.add_argument('file', help='Audio file')
    edit_parser.add_argument('--title', help='Track title')
    edit_parser.add_argument('--artist', help='Track artist')
    edit_parser.add_argument('--album', help='Album name')
    edit_parser.add_argument('--album-artist', help='Album artist')
    edit_parser.add_argument('--track', type=int, help='Track number')
    edit_parser.add_argument('--year', type=int, help='Release year')
    edit_parser.add_argument('--genre', help='Genre')
    edit_parser.add_argument('--artwork', help='Cover image file (JPEG or PNG)')
    edit_parser.add_argument('--rename', action='store_true', help='Rename to "Artist - Title" after writing')
    edit_parser.set_defaults(func=cmd_edit)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    from orchestrator import TaggingOrchestrator

    orchestrator = None

    try:
        orchestrator = TaggingOrchestrator(args.config)
        args.func(args, orchestrator)
        return 0
    except KeyboardInterrupt:
        if orchestrator is not None:
            orchestrator.cancel()
        print("\nOperation cancelled.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
