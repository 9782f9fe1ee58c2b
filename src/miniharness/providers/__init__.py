"""Model providers and the streaming protocol decoder."""

from miniharness.providers.chat import ChatCompletionsProvider
from miniharness.providers.sse import SSEDecoder, ThinkScanner, decode_all, decode_stream

__all__ = [
    "ChatCompletionsProvider",
    "SSEDecoder",
    "ThinkScanner",
    "decode_all",
    "decode_stream",
]
