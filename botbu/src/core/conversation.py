"""
Bot Bu - Conversation turns
============================
The chat UI sends prior turns as ``{"type": "user" | "bot", "content": str}``,
oldest first.  Prompts serialise them as ``User:`` / ``Assistant:`` lines.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict


class ChatTurn(BaseModel):
    """One prior message in the conversation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = "user"
    content: str = ""

    @property
    def role_label(self) -> str:
        return "User" if self.type == "user" else "Assistant"


def format_history(history: Sequence[ChatTurn], window: int | None = None) -> str:
    """
    ``User: …`` / ``Assistant: …`` lines, most recent last.

    ``window`` keeps only the last *n* turns; ``None`` keeps everything.
    """
    turns = history if window is None else history[-window:] if window > 0 else []
    return "\n".join(f"{turn.role_label}: {turn.content}" for turn in turns)
