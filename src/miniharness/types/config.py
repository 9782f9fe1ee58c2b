"""Configuration types for miniharness."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_BASE_URL = "http://localhost:1234/v1"
DEFAULT_MODEL = "zai-org/glm-4.7-flash"
DEFAULT_STATE_DIR = ".mini-harness"


@dataclass(slots=True)
class RunConfig:
    """Configuration for a coordinator or sub-agent session."""

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    max_tokens: int = 16384
    context_window: int = 202_752
    max_iterations: int = 100
    stream_timeout: float = 300.0
    think_tags: bool = True
    think_starts_open: bool = True
    heartbeat_interval: float = 5.0
    cwd: str | None = None
    root: str | None = None  # shared state dir, defaults to <cwd>/.mini-harness
    system_prompt: str | None = None
    persist_session: bool = False
