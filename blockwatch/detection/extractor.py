"""
Ticket Extractor

Finds ticket references and blocker/critical signals in message text,
and reads explicit "Blockers:" / "List of hotfixes:" enumerations.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from ..common.schemas import TicketReference
from .patterns import (
    BLOCKER_LIST_HEADERS,
    BULLET_LINE,
    HOTFIX_LIST_HEADERS,
    MENTIONED_HERE_LINK,
    NEGATED_BLOCKER_MENTION,
    TICKET_KEY_PATTERN,
    PatternLibrary,
    SignalKind,
)

logger = logging.getLogger("blockwatch.detection.extractor")


@dataclass
class BlockerListEntry:
    """One ticket named in an explicit blocker or hotfix list"""
    ticket: TicketReference
    thread_link: Optional[str] = None
    is_hotfix_list: bool = False


class TicketExtractor:
    """
    Pattern-based extraction over a PatternLibrary.

    All methods are pure functions of the text; the only state is the
    compiled library and the tracker base URL used to build ticket links.
    """

    def __init__(self, library: Optional[PatternLibrary] = None, tracker_base_url: str = ""):
        self.library = library or PatternLibrary()
        self.tracker_base_url = (tracker_base_url or "").rstrip("/")

    def extract_tickets(self, text: str) -> List[TicketReference]:
        """Ticket references in order of first appearance, deduplicated by key."""
        seen = set()
        tickets = []
        for key in TICKET_KEY_PATTERN.findall(text or ""):
            if key in seen:
                continue
            seen.add(key)
            tickets.append(TicketReference.from_key(key, self.tracker_base_url))
        return tickets

    def has_blocking_indicators(self, text: str) -> bool:
        return self.library.blocking_rule_for(text or "") is not None

    def has_critical_indicators(self, text: str) -> bool:
        """
        True when a critical term appears with no negation anywhere in text.

        Negation always wins, so "not critical" and "isn't really urgent" are False.
        """
        text = text or ""
        if not self.library.any_match(SignalKind.CRITICAL, text):
            return False
        return not self.library.any_match(SignalKind.CRITICAL_NEGATION, text)

    def is_blocker_list(self, text: str) -> bool:
        """A line opening with "Blockers ...:" or "Blockers for", unless that header negates itself."""
        return self._blocker_header(text or "") is not None

    def is_hotfix_list(self, text: str) -> bool:
        return any(p.search(text or "") for p in HOTFIX_LIST_HEADERS)

    def parse_blocker_entries(self, text: str) -> List[BlockerListEntry]:
        """
        Split an enumerated blocker/hotfix list into entries.

        Entries are bullet segments (•, -, * or numbered). Without bullets,
        only tickets on the header line itself count ("Blockers: A-1, A-2").
        Only the first ticket of an entry is listed; a "◦ Mentioned here <link>"
        sub-item becomes the entry's thread link.
        """
        text = text or ""
        hotfix = self.is_hotfix_list(text)
        if not (hotfix or self.is_blocker_list(text)):
            return []

        entries: List[BlockerListEntry] = []
        seen = set()

        def add(segment: str) -> None:
            match = TICKET_KEY_PATTERN.search(segment)
            if not match or match.group(0) in seen:
                return
            seen.add(match.group(0))
            link = MENTIONED_HERE_LINK.search(segment)
            entries.append(BlockerListEntry(
                ticket=TicketReference.from_key(match.group(0), self.tracker_base_url),
                thread_link=link.group(1) if link else None,
                is_hotfix_list=hotfix,
            ))

        if "•" in text:
            for segment in text.split("•")[1:]:
                add(segment)
            return entries

        bullet_lines = [BULLET_LINE.sub("", line, count=1)
                        for line in text.splitlines() if BULLET_LINE.match(line)]
        if bullet_lines:
            for line in bullet_lines:
                add(line)
            return entries

        for key in TICKET_KEY_PATTERN.findall(self._header_remainder(text)):
            add(key)
        return entries

    def parse_blocker_list(self, text: str) -> List[TicketReference]:
        return [entry.ticket for entry in self.parse_blocker_entries(text)]

    def extract_blocking_keywords(self, text: str) -> List[str]:
        return PatternLibrary.labels(self.library.matching(SignalKind.BLOCKING, text or ""))

    def extract_resolution_keywords(self, text: str) -> List[str]:
        return PatternLibrary.labels(self.library.matching(SignalKind.RESOLUTION, text or ""))

    @staticmethod
    def _blocker_header(text: str) -> Optional[re.Match]:
        for pattern in BLOCKER_LIST_HEADERS:
            for match in pattern.finditer(text):
                if not NEGATED_BLOCKER_MENTION.search(match.group(0)):
                    return match
        return None

    def _header_remainder(self, text: str) -> str:
        match = None
        for pattern in HOTFIX_LIST_HEADERS:
            match = pattern.search(text)
            if match:
                break
        match = match or self._blocker_header(text)
        if not match:
            return ""
        return text[match.end():].split("\n", 1)[0]
