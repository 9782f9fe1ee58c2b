"""Interactive coordinator REPL with heartbeat."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from miniharness.agents.manager import AgentManager
from miniharness.core.engine import create_coordinator, create_provider
from miniharness.core.heartbeat import HeartbeatCoordinator
from miniharness.mq.queue import MessageQueue
from miniharness.types.config import RunConfig
from miniharness.types.messages import Message

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("/exit", "/quit", "exit", "quit")


class Repl:
    """Read prompts, run the main agent, and inject heartbeat turns while idle.

    The prompt is read on a worker thread so the event loop keeps running
    (and the heartbeat keeps firing) while the user is typing.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        output_fn: Callable[[Message], None],
        session_id: str | None = None,
    ) -> None:
        self._config = config
        self._output_fn = output_fn
        self._session_id = session_id

    async def _read_prompt(self) -> str | None:
        """Read a prompt from stdin asynchronously; None on EOF or exit."""
        loop = asyncio.get_running_loop()
        try:
            line = await loop.run_in_executor(None, lambda: input("\n> "))
        except EOFError:
            return None
        if line.strip().lower() in EXIT_COMMANDS:
            return None
        return line

    async def run(self) -> None:
        """Main REPL loop."""
        root = self._config.root or ".mini-harness"
        provider = create_provider(self._config)
        manager = AgentManager(root, cwd=self._config.cwd)
        agent = create_coordinator(
            self._config,
            provider=provider,
            agent_manager=manager,
            session_id=self._session_id,
        )
        heartbeat = HeartbeatCoordinator(
            agent,
            manager,
            MessageQueue(root),
            interval=self._config.heartbeat_interval,
        )
        print(f"miniharness: {self._config.model} @ {self._config.base_url}")
        print(f"session {agent.session.session_id}; Ctrl+D or /exit to quit")
        try:
            async for msg in heartbeat.run(self._read_prompt):
                self._output_fn(msg)
        finally:
            await provider.aclose()
        print("Goodbye!")
