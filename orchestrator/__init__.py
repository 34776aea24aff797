# Tagging Orchestration
# Configuration and pipeline driver

from .config import ConfigManager
from .orchestrator import TaggingOrchestrator, create_orchestrator, create_source

__all__ = [
    'ConfigManager',
    'TaggingOrchestrator',
    'create_orchestrator',
    'create_source'
]
