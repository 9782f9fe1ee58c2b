"""Persisted record types for sub-agents and the message queue."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

BROADCAST = "broadcast"
COORDINATOR_ID = "main"


class AgentStatus(Enum):
    """Lifecycle status of a sub-agent."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not AgentStatus.RUNNING


@dataclass(slots=True)
class AgentRecord:
    """Metadata for one sub-agent (``meta.json``)."""

    id: str
    prompt: str
    status: AgentStatus = AgentStatus.RUNNING
    started_at: str = ""
    context: str | None = None
    pid: int | None = None
    finished_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentRecord:
        return cls(
            id=data["id"],
            prompt=data.get("prompt", ""),
            status=AgentStatus(data.get("status", "running")),
            started_at=data.get("started_at", ""),
            context=data.get("context"),
            pid=data.get("pid"),
            finished_at=data.get("finished_at"),
        )


@dataclass(frozen=True, slots=True)
class AgentResult:
    """Final outcome of a sub-agent (``result.json``), written exactly once."""

    agent_id: str
    status: AgentStatus
    steps_count: int = 0
    tokens_used: int = 0
    started_at: str = ""
    finished_at: str = ""
    final_response: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentResult:
        return cls(
            agent_id=data["agent_id"],
            status=AgentStatus(data["status"]),
            steps_count=data.get("steps_count", 0),
            tokens_used=data.get("tokens_used", 0),
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
            final_response=data.get("final_response"),
            error=data.get("error"),
        )


@dataclass(frozen=True, slots=True)
class MqMessage:
    """A message in the file-backed queue. Immutable once written."""

    id: str
    sender: str
    to: str
    body: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.to,
            "body": self.body,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MqMessage:
        return cls(
            id=str(data["id"]),
            sender=data["from"],
            to=data["to"],
            body=data["body"],
            timestamp=data["timestamp"],
        )

    def is_for(self, recipient: str) -> bool:
        return self.to == recipient or self.to == BROADCAST
