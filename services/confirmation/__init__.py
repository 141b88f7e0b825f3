"""
STOCKCOUNT Confirmation Services

How much confirmation a command needs, what to say about it, and how to
read the user's spoken answer.
"""

from .corrections import ReplyKind, VoiceReply, parse_voice_reply
from .policy import ConfirmationPolicy, PolicyContext

__all__ = [
    "ConfirmationPolicy",
    "PolicyContext",
    "ReplyKind",
    "VoiceReply",
    "parse_voice_reply",
]
