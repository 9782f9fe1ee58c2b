"""File-backed, append-only message queue shared by all agents.

Each message is one JSON file ``<root>/mq/NNNN.json``.  Files are never
modified or deleted; readers scan linearly and filter on recipient and a
timestamp watermark.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

from miniharness.core.storage import allocate_file, read_json, utc_now
from miniharness.types.agents import BROADCAST, MqMessage

logger = logging.getLogger(__name__)

_ID_WIDTH = 4


class MessageQueue:
    """Mailbox for agent-to-agent and broadcast messages.

    Usage::

        mq = MessageQueue(root)
        mq.send("a001", "main", "found the bug")
        for msg in mq.read_since("main", since=watermark):
            ...
    """

    def __init__(self, root: str | Path) -> None:
        self._dir = Path(root) / "mq"

    @property
    def directory(self) -> Path:
        return self._dir

    def send(self, sender: str, to: str, body: str) -> MqMessage:
        """Write a new message and return it (with its allocated id)."""
        sent: list[MqMessage] = []

        def render(ident: str) -> str:
            # Stamped only once the id file is claimed
            msg = MqMessage(id=ident, sender=sender, to=to, body=body, timestamp=utc_now())
            sent.append(msg)
            return json.dumps(msg.to_dict(), indent=2)

        ident, _ = allocate_file(self._dir, _ID_WIDTH, ".json", render)
        logger.debug("mq %s: %s -> %s", ident, sender, to)
        return sent[-1]

    def read_since(self, recipient: str, since: str | None = None) -> list[MqMessage]:
        """Messages addressed to *recipient* or broadcast, newer than *since*."""
        return [m for m in self.read_all(since) if m.is_for(recipient)]

    def read_all(self, since: str | None = None) -> list[MqMessage]:
        """Every message newer than *since*, in id order."""
        return [m for m in self._iter_messages() if not since or m.timestamp > since]

    def _iter_messages(self) -> Iterator[MqMessage]:
        if not self._dir.is_dir():
            return
        files = sorted(
            (p for p in self._dir.iterdir() if p.suffix == ".json" and p.stem.isdigit()),
            key=lambda p: int(p.stem),
        )
        for path in files:
            data = read_json(path)
            if not isinstance(data, dict):
                continue
            try:
                yield MqMessage.from_dict(data)
            except (KeyError, TypeError):
                logger.debug("Skipping malformed message %s", path.name)


__all__ = ["BROADCAST", "MessageQueue"]
