"""
Issue Detection Schemas

The closed set of shapes that flow through the detection core.
Chat payloads are normalized into RawMessage at the collaborator boundary,
so nothing downstream branches on untyped dicts.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums
# ============================================================================

class Severity(str, Enum):
    """Verdict for a ticket after consensus"""
    BLOCKING = "blocking"
    CRITICAL = "critical"
    BLOCKING_RESOLVED = "blocking_resolved"
    NONE = "none"


class SeverityFilter(str, Enum):
    """Severity selector accepted by find_issues"""
    BLOCKING = "blocking"
    CRITICAL = "critical"
    BOTH = "both"


# ============================================================================
# Helpers
# ============================================================================

def ts_value(ts: Optional[str]) -> float:
    """Numeric value of a chat timestamp ("1718030000.123456"); 0.0 if unparsable."""
    try:
        return float(ts) if ts else 0.0
    except (TypeError, ValueError):
        return 0.0


def excerpt(text: str, limit: int = 200) -> str:
    """Truncate text for display, marking the cut with an ellipsis"""
    text = text or ""
    return text[:limit] + ("..." if len(text) > limit else "")


# ============================================================================
# Models
# ============================================================================

class TicketReference(BaseModel):
    """
    Reference to an issue-tracker ticket (PROJECT-NUMBER).

    Equality and hashing use the key only: two references to the same
    ticket with different URLs are the same ticket.
    """
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., pattern=r"^[A-Z]+-\d+$")
    url: Optional[str] = None
    project: str = ""

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TicketReference):
            return self.key == other.key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.key)

    @property
    def number(self) -> str:
        return self.key.split("-", 1)[1]

    @classmethod
    def from_key(cls, key: str, base_url: str = "") -> "TicketReference":
        base_url = (base_url or "").rstrip("/")
        return cls(
            key=key,
            url=f"{base_url}/browse/{key}" if base_url else None,
            project=key.split("-", 1)[0],
        )


class Reaction(BaseModel):
    """Emoji reaction attached to a message"""
    name: str
    count: int = 0


class RawMessage(BaseModel):
    """
    A chat message as consumed by the core (read-only).

    ts doubles as identity and ordering key. A message with no thread_ts and
    reply_count == 0 is a leaf; otherwise it anchors or belongs to a thread.
    """
    model_config = ConfigDict(frozen=True)

    ts: str
    text: str = ""
    thread_ts: Optional[str] = None
    reply_count: int = 0
    user: Optional[str] = None
    bot_id: Optional[str] = None
    reactions: List[Reaction] = Field(default_factory=list)
    permalink: Optional[str] = None
    channel: Optional[str] = None

    @property
    def thread_id(self) -> str:
        return self.thread_ts or self.ts

    @property
    def is_leaf(self) -> bool:
        return self.thread_ts is None and self.reply_count == 0

    @property
    def is_reply(self) -> bool:
        return self.thread_ts is not None and self.thread_ts != self.ts

    @property
    def is_bot(self) -> bool:
        return self.bot_id is not None

    @property
    def sort_key(self) -> float:
        return ts_value(self.ts)

    @classmethod
    def from_slack(cls, data: Dict[str, Any], channel: Optional[str] = None) -> "RawMessage":
        """
        Normalize a Slack message payload (history, replies or search match).

        Attachment text is appended to the message body because bots often
        post their content there instead of in ``text``.
        """
        parts = [data.get("text") or ""]
        for attachment in data.get("attachments") or []:
            for key in ("pretext", "title", "text"):
                value = attachment.get(key)
                if value:
                    parts.append(value)
        text = "\n".join(p for p in parts if p)

        channel_field = data.get("channel")
        if isinstance(channel_field, dict):
            channel = channel_field.get("id") or channel
        elif isinstance(channel_field, str) and channel_field:
            channel = channel_field

        return cls(
            ts=str(data.get("ts", "")),
            text=text,
            thread_ts=data.get("thread_ts"),
            reply_count=int(data.get("reply_count") or 0),
            user=data.get("user"),
            bot_id=data.get("bot_id"),
            reactions=[
                Reaction(name=r.get("name", ""), count=int(r.get("count") or 0))
                for r in data.get("reactions") or []
            ],
            permalink=data.get("permalink"),
            channel=channel,
        )


class Issue(BaseModel):
    """
    One per-ticket verdict emitted by the detection core.

    Records with severity NONE are never emitted, and tickets is never empty.
    """
    severity: Severity
    text: str
    tickets: List[TicketReference] = Field(..., min_length=1)
    timestamp: str
    has_thread: bool = False
    permalink: Optional[str] = None
    resolution_text: Optional[str] = None
    hotfix_commitment: bool = False
    llm_confidence: Optional[int] = None
    llm_reasoning: Optional[str] = None

    @field_validator("tickets")
    @classmethod
    def _dedupe_tickets(cls, tickets: List[TicketReference]) -> List[TicketReference]:
        seen = set()
        unique = []
        for ticket in tickets:
            if ticket.key not in seen:
                seen.add(ticket.key)
                unique.append(ticket)
        return unique

    @property
    def ticket_keys(self) -> List[str]:
        return [t.key for t in self.tickets]

    @property
    def sort_key(self) -> float:
        return ts_value(self.timestamp)
