"""
STOCKCOUNT Voice Session Transport

Newline-delimited JSON over TCP between a voice client (which runs the
speech recognizer) and the inventory session pipelines.
"""

from .protocol import MessageType, ProtocolMessage, read_message, write_message

__all__ = [
    "MessageType",
    "ProtocolMessage",
    "read_message",
    "write_message",
]
