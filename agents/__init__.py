# Processing Agents
# Specialized agents for scanning, matching, and writing tags

from .base import BaseAgent
from .scanner import ScannerAgent, AudioFile, TagStatus
from .fixer import FixerAgent
from .resolver import ResolverAgent, MatchDecision, MatchStatus

__all__ = [
    'BaseAgent',
    'ScannerAgent',
    'AudioFile',
    'TagStatus',
    'FixerAgent',
    'ResolverAgent',
    'MatchDecision',
    'MatchStatus'
]
