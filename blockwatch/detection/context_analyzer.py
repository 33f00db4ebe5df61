"""
Context Analyzer

Turns grouped thread messages into per-ticket Issue records by running
the consensus walk over the messages that talk about each ticket.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

from ..common.schemas import Issue, RawMessage, Severity, TicketReference, excerpt
from .consensus import ThreadConsensusResolver
from .extractor import TicketExtractor
from .handlers.base import BaseChatClient
from .patterns import GENERIC_BLOCKER_MENTION, TICKET_KEY_PATTERN, TICKET_NUMBER_FRAGMENT

logger = logging.getLogger("blockwatch.detection.context_analyzer")


def group_by_thread(messages: Sequence[RawMessage]) -> Dict[str, List[RawMessage]]:
    """Group messages by thread id, each group sorted by timestamp and free of duplicates."""
    groups: Dict[str, Dict[str, RawMessage]] = {}
    for message in messages:
        groups.setdefault(message.thread_id, {}).setdefault(message.ts, message)
    return {
        thread_id: sorted(by_ts.values(), key=lambda m: m.sort_key)
        for thread_id, by_ts in groups.items()
    }


def _ticket_keys(text: Optional[str]) -> Set[str]:
    return set(TICKET_KEY_PATTERN.findall(text or ""))

class ContextAnalyzer:
    """
    Per-ticket thread analysis.

    A message is in scope for a ticket when it names the ticket, when it
    talks about blockers generically and carries the ticket's number
    ("blockers are just 65023, 65025"), or when it names no ticket and the
    thread discusses a single ticket. UI-terminology messages are never in scope.
    """

    def __init__(
        self,
        client: Optional[BaseChatClient] = None,
        extractor: Optional[TicketExtractor] = None,
        resolver: Optional[ThreadConsensusResolver] = None,
        excerpt_length: int = 200,
    ):
        self.client = client
        self.extractor = extractor or TicketExtractor()
        self.library = self.extractor.library
        self.resolver = resolver or ThreadConsensusResolver(self.library)
        self.excerpt_length = excerpt_length

    async def analyze_tickets(
        self,
        tickets: Sequence[TicketReference],
        messages: Sequence[RawMessage],
        channel: Optional[str] = None,
    ) -> List[Issue]:
        """
        Analyze every ticket discussed in the given messages.

        Args:
            tickets: Tickets already known to matter (list entries, seed mentions)
            messages: Seeds plus fetched thread context
            channel: Channel used to resolve permalinks

        Returns:
            One Issue per (thread, ticket) whose verdict is not none
        """
        issues: List[Issue] = []
        for thread_id, thread in group_by_thread(messages).items():
            issues.extend(await self._analyze_thread(thread_id, thread, tickets, channel))
        logger.info("Context analysis produced %d issues from %d messages", len(issues), len(messages))
        return issues

    async def _analyze_thread(
        self,
        thread_id: str,
        thread: List[RawMessage],
        requested: Sequence[TicketReference],
        channel: Optional[str],
    ) -> List[Issue]:
        thread_tickets = self._thread_tickets(thread, requested)
        if not thread_tickets:
            return []

        single = len(thread_tickets) == 1
        anchor = next((m for m in thread if m.ts == thread_id), thread[0])
        has_thread = len(thread) > 1

        issues: List[Issue] = []
        permalink: Optional[str] = None
        permalink_fetched = False

        for ticket in thread_tickets:
            scoped = [m for m in thread if self._in_scope(m, ticket, single)]
            if not scoped:
                continue

            consensus = self.resolver.resolve(scoped[0], scoped[1:])
            if self._is_pinned(thread, ticket):
                consensus.hotfix_commitment = True

            severity = consensus.severity
            if severity == Severity.NONE:
                continue

            if not permalink_fetched:
                permalink = await self._thread_permalink(anchor, channel)
                permalink_fetched = True

            issues.append(Issue(
                severity=severity,
                text=self._ticket_text(thread, anchor, ticket),
                tickets=[ticket],
                timestamp=thread_id,
                has_thread=has_thread,
                permalink=permalink,
                resolution_text=consensus.resolution_text if consensus.resolved else None,
                hotfix_commitment=consensus.hotfix_commitment,
            ))
            logger.debug("Ticket %s in thread %s -> %s", ticket.key, thread_id, severity.value)
        return issues

    def _thread_tickets(
        self,
        thread: List[RawMessage],
        requested: Sequence[TicketReference],
    ) -> List[TicketReference]:
        found: Dict[str, TicketReference] = {}
        for message in thread:
            for ticket in self.extractor.extract_tickets(message.text):
                found.setdefault(ticket.key, ticket)
        named = set()
        for message in thread:
            named.update(_ticket_keys(message.text))
        for ticket in requested:
            if ticket.key not in found and ticket.key in named:
                found[ticket.key] = ticket
        return list(found.values())

    def _in_scope(self, message: RawMessage, ticket: TicketReference, single: bool) -> bool:
        text = message.text or ""
        if self.library.is_ui_context(text):
            return False
        keys = _ticket_keys(text)
        if ticket.key in keys:
            return True
        if keys:
            return False
        if GENERIC_BLOCKER_MENTION.search(text) and ticket.number in TICKET_NUMBER_FRAGMENT.findall(text):
            return True
        return single

    def _is_pinned(self, thread: List[RawMessage], ticket: TicketReference) -> bool:
        """A ticket named in hotfix context stays blocking whatever follows."""
        for message in thread:
            text = message.text or ""
            if ticket.key in _ticket_keys(text) and not self.library.is_ui_context(text) \
                    and self.library.is_hotfix_context(text):
                return True
        return False

    def _ticket_text(self, thread: List[RawMessage], anchor: RawMessage, ticket: TicketReference) -> str:
        for message in thread:
            if ticket.key in _ticket_keys(message.text):
                return excerpt(message.text, self.excerpt_length)
        return excerpt(anchor.text, self.excerpt_length)

    async def _thread_permalink(self, anchor: RawMessage, channel: Optional[str]) -> Optional[str]:
        if anchor.permalink:
            return anchor.permalink
        target = channel or anchor.channel
        if self.client is None or not target:
            return None
        try:
            return await self.client.get_permalink(target, anchor.thread_id)
        except Exception as e:
            logger.warning("Failed to get thread permalink for %s: %s", anchor.thread_id, e)
            return None
