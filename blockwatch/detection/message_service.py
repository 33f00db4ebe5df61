"""
Message Service

Finds seed messages for a day and expands them into full thread context.
"""

import asyncio
import logging
import re
from typing import List, Optional, Sequence

from ..common.config import DEFAULT_SEARCH_TERMS
from ..common.errors import AllSearchesFailedError
from ..common.schemas import RawMessage
from .handlers.base import BaseChatClient
from .patterns import PatternLibrary, build_search_queries

logger = logging.getLogger("blockwatch.detection.message_service")

_PERMALINK_THREAD_TS = re.compile(r"[?&]thread_ts=([^&]+)")


class SlackMessageService:
    """
    Chat-facing half of the pipeline.

    Seed searches run concurrently and tolerate partial failure; only when
    every search fails does the service raise AllSearchesFailedError.
    """

    def __init__(
        self,
        client: BaseChatClient,
        library: Optional[PatternLibrary] = None,
        search_terms: Sequence[str] = DEFAULT_SEARCH_TERMS,
    ):
        self.client = client
        self.library = library or PatternLibrary()
        self.search_terms = list(search_terms)
        self.last_search_errors: List[str] = []

    async def find_blocker_messages(self, channel: str, date: Optional[str] = None) -> List[RawMessage]:
        """
        Run the seed searches for a channel and day.

        Args:
            channel: Channel name or id
            date: YYYY-MM-DD, "today" or None (today)

        Returns:
            Unique seed messages, minus negative phrases and release-manager summaries
        """
        day = None if not date or date == "today" else date
        queries = build_search_queries(self.search_terms, day)
        results = await asyncio.gather(
            *(self.client.search_messages(q, channel) for q in queries),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        self.last_search_errors = []
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                logger.warning("Search %r failed: %s", query, result)
                self.last_search_errors.append(f"Search {query!r} failed: {result}")
        if results and len(errors) == len(results):
            raise AllSearchesFailedError(errors)

        seeds: List[RawMessage] = []
        seen = set()
        for result in results:
            if isinstance(result, BaseException):
                continue
            for message in result:
                if message.ts and message.ts not in seen:
                    seen.add(message.ts)
                    seeds.append(self.with_thread_ts(message))

        filtered = [
            m for m in seeds
            if not self.library.has_negative_seed_phrase(m.text)
            and not self.library.is_release_manager_summary(m.text)
        ]
        logger.info("Found %d seed messages (%d after filtering) in %s",
                    len(seeds), len(filtered), channel)
        return filtered

    @classmethod
    def with_thread_ts(cls, message: RawMessage) -> RawMessage:
        """Search matches for replies may carry their thread only in the permalink."""
        if message.thread_ts:
            return message
        thread_id = cls.extract_thread_id(message)
        if thread_id and thread_id != message.ts:
            return message.model_copy(update={"thread_ts": thread_id})
        return message

    @staticmethod
    def extract_thread_id(message: RawMessage) -> Optional[str]:
        if message.thread_ts:
            return message.thread_ts
        if message.permalink:
            match = _PERMALINK_THREAD_TS.search(message.permalink)
            if match:
                return match.group(1)
        if message.reply_count > 0:
            return message.ts
        return None

    async def get_thread_context(self, message: RawMessage, channel: str) -> List[RawMessage]:
        """Parent plus replies of the message's thread; the message alone if it has none."""
        thread_id = self.extract_thread_id(message)
        if not thread_id:
            return [message]

        try:
            parent = await self.client.get_message_details(channel, thread_id)
            replies = await self.client.get_thread_replies(channel, thread_id)
        except Exception as e:
            logger.warning("Failed to fetch full context for thread %s: %s", thread_id, e)
            return [message]

        if parent.ts == message.ts and message.permalink and not parent.permalink:
            parent = parent.model_copy(update={"permalink": message.permalink})
        return [parent] + [r for r in replies if r.ts != parent.ts]
