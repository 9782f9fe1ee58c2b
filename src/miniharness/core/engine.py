"""Engine: wires provider + tools + session + config into a running agent."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from miniharness.agents.manager import AgentManager
from miniharness.agents.prompts import coordinator_prompt, sub_agent_prompt
from miniharness.core.config import resolve_config
from miniharness.core.loop import AgentLoop
from miniharness.core.session import Session
from miniharness.providers.chat import ChatCompletionsProvider
from miniharness.tools.registry import build_registry
from miniharness.types.agents import COORDINATOR_ID
from miniharness.types.config import DEFAULT_STATE_DIR, RunConfig
from miniharness.types.messages import Message
from miniharness.types.providers import ProviderAdapter

logger = logging.getLogger(__name__)

ONE_SHOT_MAX_ITERATIONS = 25
SUB_AGENT_MAX_ITERATIONS = 50


def create_provider(config: RunConfig) -> ChatCompletionsProvider:
    """Build the HTTP provider for *config*."""
    return ChatCompletionsProvider(
        base_url=config.base_url,
        model=config.model,
        api_key=config.api_key,
        stream_timeout=config.stream_timeout,
        think_tags=config.think_tags,
        think_starts_open=config.think_starts_open,
    )


def _root(config: RunConfig) -> Path:
    return Path(config.root or Path(config.cwd or ".") / DEFAULT_STATE_DIR)


def create_coordinator(
    config: RunConfig,
    *,
    provider: ProviderAdapter | None = None,
    agent_manager: AgentManager | None = None,
    session_id: str | None = None,
) -> AgentLoop:
    """The main agent: full tool set, identity ``main``."""
    root = _root(config)
    cwd = config.cwd or str(Path.cwd())
    manager = agent_manager or AgentManager(root, cwd=cwd)
    session = Session(
        session_id,
        root=root if config.persist_session or session_id else None,
        system_prompt=config.system_prompt or coordinator_prompt(cwd, str(root)),
    )
    return AgentLoop(
        provider or create_provider(config),
        build_registry(root, COORDINATOR_ID, manager),
        config,
        session,
        agent_id=COORDINATOR_ID,
    )


def create_sub_agent(
    config: RunConfig,
    agent_id: str,
    *,
    provider: ProviderAdapter | None = None,
) -> AgentLoop:
    """A worker agent: restricted tool set bound to *agent_id*."""
    root = _root(config)
    cwd = config.cwd or str(Path.cwd())
    session = Session(system_prompt=config.system_prompt or sub_agent_prompt(agent_id, cwd))
    return AgentLoop(
        provider or create_provider(config),
        build_registry(root, agent_id),
        config,
        session,
        agent_id=agent_id,
    )


async def run(
    prompt: str,
    *,
    model: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    max_iterations: int = ONE_SHOT_MAX_ITERATIONS,
    max_tokens: int | None = None,
    cwd: str | None = None,
    session_id: str | None = None,
    _provider: ProviderAdapter | None = None,
    **kwargs: Any,
) -> AsyncIterator[Message]:
    """Run a single coordinator prompt to completion.

    This is the primary SDK entry point.

    Args:
        prompt: The user's instruction.
        model: Model ID; defaults to config.
        base_url: Chat-completions endpoint base URL.
        api_key: Bearer token, if the endpoint needs one.
        max_iterations: Round ceiling for this run.
        max_tokens: Max tokens per model response.
        cwd: Working directory for tools and the state dir.
        session_id: Resume (and persist) a coordinator session.
        _provider: Injected provider for testing (private).
    """
    config = resolve_config(
        cwd,
        model=model,
        base_url=base_url,
        api_key=api_key,
        max_iterations=max_iterations,
        max_tokens=max_tokens,
        **kwargs,
    )
    provider = _provider or create_provider(config)
    loop = create_coordinator(config, provider=provider, session_id=session_id)
    try:
        async for msg in loop.run(prompt):
            yield msg
    finally:
        if _provider is None:
            await provider.aclose()
