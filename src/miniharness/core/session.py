"""Conversation history with optional JSONL append-only persistence."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from miniharness.core.storage import utc_now
from miniharness.types.providers import ChatMessage

logger = logging.getLogger(__name__)


def sessions_dir(root: str | Path) -> Path:
    """Get the sessions directory under *root*, creating it if needed."""
    d = Path(root) / "sessions"
    d.mkdir(parents=True, exist_ok=True)
    return d


def new_session_id() -> str:
    """Generate a new session ID."""
    return uuid.uuid4().hex[:12]


class Session:
    """Ordered chat history for one agent.

    With a *root*, every message is appended to
    ``<root>/sessions/<session_id>.jsonl`` and an existing file is replayed on
    construction, so a conversation can be resumed by id.
    """

    def __init__(
        self,
        session_id: str | None = None,
        *,
        root: str | Path | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self.session_id = session_id or new_session_id()
        self._path = sessions_dir(root) / f"{self.session_id}.jsonl" if root else None
        self._messages: list[ChatMessage] = []
        self._turns = 0
        self._total_tokens = 0

        if self._path is not None and self._path.exists():
            self._load()
        if system_prompt and not self._messages:
            self.add_message(ChatMessage(role="system", content=system_prompt))

    def _load(self) -> None:
        assert self._path is not None
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except ValueError:
                    logger.warning("Skipping malformed line in %s", self._path)
                    continue
                if entry.get("type") == "message":
                    self._messages.append(ChatMessage.from_wire(entry["data"]))
                elif entry.get("type") == "turn":
                    self._turns = entry.get("turn", self._turns)
                    self._total_tokens += entry.get("tokens", 0)

    def _append(self, entry: dict[str, Any]) -> None:
        if self._path is None:
            return
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def add_message(self, msg: ChatMessage) -> None:
        """Add a message to the history."""
        self._messages.append(msg)
        self._append({"type": "message", "data": msg.to_wire()})

    def record_turn(self, tokens: int = 0) -> None:
        """Record a completed model round."""
        self._turns += 1
        self._total_tokens += tokens
        self._append({
            "type": "turn",
            "turn": self._turns,
            "tokens": tokens,
            "timestamp": utc_now(),
        })

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def turns(self) -> int:
        return self._turns

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    @property
    def path(self) -> Path | None:
        return self._path
