"""Heartbeat coordinator for the interactive main agent.

While the main agent waits for user input, a timer periodically polls the
message queue and the sub-agent records.  When something new turns up, a
``[System heartbeat]`` notification is injected as the next turn.

The pending input read is never discarded when the timer wins the race: the
same task is awaited again on the next round until it actually completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

from miniharness.agents.manager import AgentManager
from miniharness.core.loop import AgentLoop
from miniharness.core.storage import utc_now
from miniharness.mq.queue import MessageQueue
from miniharness.types.agents import COORDINATOR_ID, AgentStatus, MqMessage
from miniharness.types.messages import Message, SystemEvent

logger = logging.getLogger(__name__)

InputSource = Callable[[], Awaitable[str | None]]

HEARTBEAT_HEADER = "[System heartbeat]"
_HINT = (
    "Use get_agent_result to inspect finished agents and mq_read to read "
    "your messages."
)


@dataclass(slots=True)
class HeartbeatTick:
    """What one poll found."""

    agent_events: list[str] = field(default_factory=list)
    messages: list[MqMessage] = field(default_factory=list)  # every new message
    inbox: list[MqMessage] = field(default_factory=list)  # addressed to us

    @property
    def notification(self) -> str | None:
        """Text of the injected turn, or None when there is nothing to report."""
        if not self.agent_events and not self.inbox:
            return None
        lines = [HEARTBEAT_HEADER]
        lines.extend(self.agent_events)
        lines.extend(f"message {m.id} from {m.sender}: {m.body}" for m in self.inbox)
        lines.append(_HINT)
        return "\n".join(lines)


class HeartbeatCoordinator:
    """Races user input against a timer and drives the main agent loop.

    Usage::

        hb = HeartbeatCoordinator(loop, manager, MessageQueue(root))
        async for msg in hb.run(read_input):
            printer.print(msg)
    """

    def __init__(
        self,
        loop: AgentLoop,
        manager: AgentManager,
        queue: MessageQueue,
        *,
        agent_id: str = COORDINATOR_ID,
        interval: float = 5.0,
    ) -> None:
        self._loop = loop
        self._manager = manager
        self._queue = queue
        self._agent_id = agent_id
        self._interval = interval
        self._known: dict[str, AgentStatus] = {}
        self._watermark: str | None = None

    @property
    def watermark(self) -> str | None:
        return self._watermark

    def prime(self) -> None:
        """Treat everything already on disk as seen."""
        for record in self._manager.list_all():
            self._known[record.id] = record.status
        self._watermark = utc_now()

    def poll(self) -> HeartbeatTick:
        """One heartbeat: diff agent statuses and read new messages."""
        tick = HeartbeatTick()
        for record in self._manager.list_all():
            previous = self._known.get(record.id)
            if previous is None:
                tick.agent_events.append(f"agent {record.id} spawned ({record.status.value})")
            elif previous is not record.status:
                tick.agent_events.append(
                    f"agent {record.id}: {previous.value} → {record.status.value}",
                )
            self._known[record.id] = record.status

        tick.messages = self._queue.read_all(self._watermark)
        if tick.messages:
            self._watermark = max(m.timestamp for m in tick.messages)
        tick.inbox = [m for m in tick.messages if m.is_for(self._agent_id)]
        return tick

    async def run(self, read_input: InputSource, *, prime: bool = True) -> AsyncIterator[Message]:
        """Serve user turns and heartbeat turns until input reaches EOF."""
        if prime:
            self.prime()
        pending: asyncio.Future[str | None] | None = None
        try:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(read_input())
                timer = asyncio.ensure_future(asyncio.sleep(self._interval))
                done, _ = await asyncio.wait(
                    {pending, timer}, return_when=asyncio.FIRST_COMPLETED,
                )

                if pending in done:
                    timer.cancel()
                    text = pending.result()
                    pending = None
                    if text is None:
                        return
                    text = text.strip()
                    if not text:
                        continue
                    async for msg in self._loop.run(text):
                        yield msg
                    continue

                tick = self.poll()
                for m in tick.messages:
                    yield SystemEvent(type="mq_message", data=m.to_dict())
                notification = tick.notification
                if notification is None:
                    continue
                logger.debug("Heartbeat injecting turn: %s", notification)
                yield SystemEvent(type="heartbeat", data={"text": notification})
                async for msg in self._loop.run(notification):
                    yield msg
        finally:
            if pending is not None and not pending.done():
                pending.cancel()
