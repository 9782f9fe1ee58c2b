"""File-backed message queue."""

from miniharness.mq.queue import BROADCAST, MessageQueue

__all__ = ["BROADCAST", "MessageQueue"]
