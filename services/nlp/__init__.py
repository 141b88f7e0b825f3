"""
STOCKCOUNT NLP Services

Turning streamed speech transcripts into inventory commands.
"""

from .command_accumulator import CommandAccumulator, MergeResult, snapshot_confidence
from .command_extractor import (
    CommandExtractor,
    LLMCommandExtractor,
    create_command_extractor,
    is_command_complete,
)
from .context_enhancer import enhance_with_context
from .rule_extractor import RuleBasedCommandExtractor
from .session_context import SessionContext
from .transcript_aggregator import TranscriptAggregator

__all__ = [
    "CommandAccumulator",
    "MergeResult",
    "snapshot_confidence",
    "CommandExtractor",
    "LLMCommandExtractor",
    "RuleBasedCommandExtractor",
    "create_command_extractor",
    "is_command_complete",
    "enhance_with_context",
    "SessionContext",
    "TranscriptAggregator",
]
