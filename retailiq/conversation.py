"""
Conversation turn rendering.

Maps a single utterance to the bubble the conversation UI draws, and
flattens a whole transcript into the plain-text form used in analysis
prompts.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable

USER = "user"
AGENT = "agent"


@dataclass(frozen=True)
class ChatBubble:
    """
    One rendered conversation turn.

    Attributes:
        text: Message text
        speaker: "user" or "agent"
        align: "right" for the user, "left" for the agent
        avatar: "user" or "bot" icon
        time: Timestamp as HH:MM
    """
    text: str
    speaker: str
    align: str
    avatar: str
    time: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def render_turn(message: str, speaker: str, timestamp: datetime) -> ChatBubble:
    """Render one turn; any speaker other than the user is drawn as the agent."""
    is_user = speaker == USER
    return ChatBubble(
        text=message,
        speaker=USER if is_user else AGENT,
        align="right" if is_user else "left",
        avatar="user" if is_user else "bot",
        time=timestamp.strftime("%H:%M"),
    )


def format_transcript(entries: Iterable[Dict[str, Any]]) -> str:
    """Render transcript entries as "ROLE: message" lines."""
    return "\n".join(
        f"{str(entry.get('role', '')).upper()}: {entry.get('message') or ''}" for entry in entries
    )
