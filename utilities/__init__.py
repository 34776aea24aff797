# Tag Utilities
# Tag container access and filename parsing

from .tag_container import (
    TagError, TagSnapshot, TagUpdate, read_tags, write_tags, is_audio_file
)
from .filename_parser import ParsedGuess, parse_filename

__all__ = [
    'TagError',
    'TagSnapshot',
    'TagUpdate',
    'read_tags',
    'write_tags',
    'is_audio_file',
    'ParsedGuess',
    'parse_filename'
]
