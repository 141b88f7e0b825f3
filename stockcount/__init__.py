"""
STOCKCOUNT - Voice-Driven Restaurant Inventory

Staff update inventory counts by speaking ("add five pounds of coffee").
Streaming transcripts are aggregated into utterances, parsed into commands,
merged across utterances, resolved against the catalog, and applied with as
much human confirmation as the command's risk calls for.

Architecture:
    - One asyncio pipeline per connected voice session
    - Pluggable command extraction: chat-model backed or rule based
    - Embedding similarity search for spoken item names
    - Risk-based confirmation policy with voice and UI confirmation
"""

__version__ = "0.1.0"

# Version tuple for programmatic comparison
VERSION_INFO = (0, 1, 0)

# Core exceptions (import base class for convenience)
from stockcount.exceptions import StockcountError

# Core types (import commonly used types for convenience)
from stockcount.types import (
    CandidateCommand,
    CommandAction,
    ConfirmationDecision,
    ConfirmationType,
)

__all__ = [
    "__version__",
    "VERSION_INFO",
    "StockcountError",
    "CandidateCommand",
    "CommandAction",
    "ConfirmationDecision",
    "ConfirmationType",
]
