"""
Slack Client

Reads a Slack workspace through the Web API and converts payloads to RawMessages.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from ...common.config import SlackConfig
from ...common.errors import ChatClientError, SlackAPIError
from ...common.schemas import RawMessage
from .base import BaseChatClient

logger = logging.getLogger("blockwatch.detection.handlers.slack")

_CONVERSATION_ID = re.compile(r"^[CGD][A-Z0-9]+$")


class SlackClient(BaseChatClient):
    """
    Client for the Slack Web API.

    Uses:
    - search.messages (user token with search:read)
    - conversations.history / conversations.replies
    - chat.getPermalink
    - conversations.list (channel name resolution, cached)

    HTTP 429 responses are retried after the Retry-After delay.
    """

    def __init__(
        self,
        token: str,
        api_base_url: str = "https://slack.com/api",
        timeout: float = 10.0,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Slack client.

        Args:
            token: Slack token (xoxp-/xoxb-)
            api_base_url: Web API base URL
            timeout: Per-request timeout in seconds
            max_retries: Retries on rate limiting
            http_client: Pre-built AsyncClient (tests inject a mock transport)
        """
        super().__init__("slack")
        if not token:
            raise ChatClientError("Slack token is not configured")
        self._max_retries = max_retries
        self._http = http_client or httpx.AsyncClient(
            base_url=api_base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(timeout),
        )
        self._http.headers["Authorization"] = f"Bearer {token}"
        self._channel_cache: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: SlackConfig) -> "SlackClient":
        return cls(
            token=config.token,
            api_base_url=config.api_base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Web API method, retrying on rate limits."""
        attempt = 0
        while True:
            try:
                response = await self._http.get(method, params=params)
            except httpx.HTTPError as e:
                raise SlackAPIError(method, str(e) or type(e).__name__) from e

            if response.status_code == 429 and attempt < self._max_retries:
                delay = float(response.headers.get("Retry-After", "1"))
                attempt += 1
                logger.warning("Slack rate limited on %s, retrying in %.1fs", method, delay)
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise SlackAPIError(method, f"HTTP {response.status_code}", response.status_code)

            data = response.json()
            if not data.get("ok"):
                raise SlackAPIError(method, data.get("error", "unknown_error"), response.status_code)
            return data

    async def resolve_conversation(self, name_or_id: str) -> str:
        if not name_or_id or not name_or_id.strip():
            raise ChatClientError("channel is required")

        target = name_or_id.strip()
        if _CONVERSATION_ID.match(target):
            return target

        name = target[1:] if target.startswith("#") else target
        if name in self._channel_cache:
            return self._channel_cache[name]

        cursor = None
        while True:
            params = {
                "exclude_archived": "true",
                "limit": 1000,
                "types": "public_channel,private_channel",
            }
            if cursor:
                params["cursor"] = cursor
            data = await self._call("conversations.list", params)
            for channel in data.get("channels", []):
                self._channel_cache[channel.get("name", "")] = channel.get("id", "")
            if name in self._channel_cache:
                return self._channel_cache[name]
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break

        raise ChatClientError(f"Channel not found: {target}")

    async def search_messages(self, query: str, channel: Optional[str] = None) -> List[RawMessage]:
        q = query
        if channel and "in:" not in q:
            channel_name = channel[1:] if channel.startswith("#") else channel
            q = f"{q} in:{channel_name}"

        data = await self._call("search.messages", {
            "query": q,
            "sort": "timestamp",
            "sort_dir": "desc",
            "count": 50,
        })
        matches = (data.get("messages") or {}).get("matches", [])
        return [RawMessage.from_slack(m) for m in matches]

    async def get_message_details(self, channel: str, ts: str) -> RawMessage:
        conversation = await self.resolve_conversation(channel)
        data = await self._call("conversations.history", {
            "channel": conversation,
            "latest": ts,
            "oldest": ts,
            "inclusive": "true",
            "limit": 1,
        })
        messages = data.get("messages", [])
        if not messages:
            raise ChatClientError(f"Message not found with timestamp {ts} in channel {channel}")
        return RawMessage.from_slack(messages[0], channel=conversation)

    async def get_thread_replies(self, channel: str, root_ts: str) -> List[RawMessage]:
        conversation = await self.resolve_conversation(channel)
        replies: List[RawMessage] = []
        cursor = None
        first_page = True
        while True:
            params = {"channel": conversation, "ts": root_ts, "limit": 200}
            if cursor:
                params["cursor"] = cursor
            data = await self._call("conversations.replies", params)
            messages = data.get("messages", [])
            # First page starts with the parent
            if first_page:
                messages = messages[1:]
                first_page = False
            replies.extend(RawMessage.from_slack(m, channel=conversation) for m in messages)
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
        return replies

    async def get_permalink(self, channel: str, ts: str) -> Optional[str]:
        try:
            conversation = await self.resolve_conversation(channel)
            data = await self._call("chat.getPermalink", {
                "channel": conversation,
                "message_ts": ts,
            })
        except ChatClientError as e:
            logger.debug("Permalink lookup failed for %s/%s: %s", channel, ts, e)
            return None
        return data.get("permalink")
