"""
Base Chat Client

Abstract contract the detection core uses to read a chat platform.
Implementations return normalized RawMessage objects, never raw payloads.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ...common.schemas import RawMessage


class BaseChatClient(ABC):
    """
    Abstract base class for chat platform clients.

    Each client must implement:
    - search_messages: full-text search scoped to a channel
    - get_message_details: fetch a single message by timestamp
    - get_thread_replies: fetch the replies of a thread (parent excluded)
    - get_permalink: resolve a message link (None when unavailable)
    - resolve_conversation: map "#name", "name" or an id to a conversation id
    """

    def __init__(self, source_name: str):
        """
        Initialize client.

        Args:
            source_name: Name of the platform (e.g., "slack")
        """
        self.source_name = source_name

    @abstractmethod
    async def search_messages(self, query: str, channel: Optional[str] = None) -> List[RawMessage]:
        """
        Search messages matching a query.

        Args:
            query: Platform search query (may carry modifiers such as on:today)
            channel: Restrict the search to this channel

        Returns:
            Matching messages, newest first
        """
        pass

    @abstractmethod
    async def get_message_details(self, channel: str, ts: str) -> RawMessage:
        """Fetch one message by its timestamp."""
        pass

    @abstractmethod
    async def get_thread_replies(self, channel: str, root_ts: str) -> List[RawMessage]:
        """Fetch all replies of the thread rooted at root_ts, parent excluded."""
        pass

    @abstractmethod
    async def get_permalink(self, channel: str, ts: str) -> Optional[str]:
        """Resolve a permalink for a message; failures yield None."""
        pass

    @abstractmethod
    async def resolve_conversation(self, name_or_id: str) -> str:
        """Resolve a channel name or id to a conversation id."""
        pass

    async def close(self) -> None:
        """Release network resources. Override when the client holds any."""
        return None
