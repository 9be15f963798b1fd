from termchat.memory.models import OutgoingMessage, Role, StreamEvent, Turn
from termchat.memory.session import SessionKey
from termchat.memory.store import TranscriptStore

__all__ = [
    "OutgoingMessage",
    "Role",
    "SessionKey",
    "StreamEvent",
    "TranscriptStore",
    "Turn",
]
