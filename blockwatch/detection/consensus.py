"""
Thread Consensus Resolver

Walks a thread in chronological order and folds per-message signals into
the thread's current verdict. Later statements override earlier ones, so
"this is a blocker" followed by "fixed, not blocking anymore" ends resolved.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, TypeVar

from ..common.schemas import RawMessage, Severity
from .patterns import PatternLibrary, SignalKind, SignalRule

logger = logging.getLogger("blockwatch.detection.consensus")

S = TypeVar("S")


def chronological_walk(
    messages: Sequence[RawMessage],
    table: Sequence[SignalRule],
    reducer: Callable[[S, RawMessage, List[SignalRule]], S],
    initial: S,
    presorted: bool = False,
) -> S:
    """
    Fold a reducer over messages in timestamp order.

    For every message the reducer receives the current state, the message
    and the rules of ``table`` that match its text (in table order, which is
    descending priority). Timestamps compare numerically; ties keep input order.

    Args:
        messages: Messages to walk
        table: Ordered priority table
        reducer: (state, message, hits) -> new state
        initial: Starting state
        presorted: Trust the given order instead of sorting by timestamp

    Returns:
        Final state
    """
    ordered = list(messages) if presorted else sorted(messages, key=lambda m: m.sort_key)
    state = initial
    for message in ordered:
        hits = [rule for rule in table if rule.matches(message.text)]
        state = reducer(state, message, hits)
    return state


@dataclass
class ConsensusResult:
    """Current state of a thread after the chronological walk"""
    blocking: bool = False
    critical: bool = False
    resolved: bool = False
    resolution_text: Optional[str] = None
    hotfix_commitment: bool = False
    was_blocking: bool = False
    signals: List[str] = field(default_factory=list)
    critical_negated: bool = field(default=False, repr=False)

    @property
    def severity(self) -> Severity:
        if self.blocking or self.hotfix_commitment:
            return Severity.BLOCKING
        if self.resolved and self.was_blocking:
            return Severity.BLOCKING_RESOLVED
        if self.critical:
            return Severity.CRITICAL
        return Severity.NONE


class ThreadConsensusResolver:
    """
    Derives a thread verdict from its anchor and replies.

    Per message, in order:
    1. Resolution language clears blocking and records the resolution text
    2. The most specific blocking rule sets blocking, unless step 1 matched
       the same message; a re-block clears an earlier resolution
    3. Critical negation is sticky for the rest of the walk
    4. A no-go reaction counts as a blocking signal
    5. Explicit hotfix commitments set hotfix_commitment
    """

    def __init__(self, library: Optional[PatternLibrary] = None):
        self.library = library or PatternLibrary()

    def resolve(self, anchor: RawMessage, replies: Sequence[RawMessage] = ()) -> ConsensusResult:
        sequence = [anchor] + sorted(replies, key=lambda m: m.sort_key)
        return chronological_walk(
            sequence,
            self.library.rules,
            self._reduce,
            ConsensusResult(),
            presorted=True,
        )

    def _reduce(self, state: ConsensusResult, message: RawMessage, hits: List[SignalRule]) -> ConsensusResult:
        text = message.text or ""

        resolution = next((r for r in hits if r.kind == SignalKind.RESOLUTION), None)
        if resolution:
            state.resolved = True
            state.resolution_text = text
            state.blocking = False
            state.signals.append(f"{message.ts}:resolution:{resolution.label}")

        blocking = self._blocking_hit(text, hits)
        no_go = any(self.library.is_no_go_reaction(r.name) for r in message.reactions)
        if (blocking or no_go) and not resolution:
            state.blocking = True
            state.was_blocking = True
            state.resolved = False
            state.resolution_text = None
            label = blocking.label if blocking else "no-go reaction"
            state.signals.append(f"{message.ts}:blocking:{label}")

        negated = any(r.kind == SignalKind.CRITICAL_NEGATION for r in hits)
        positive = any(r.kind == SignalKind.CRITICAL for r in hits)
        if negated:
            state.critical = False
            state.critical_negated = True
            state.signals.append(f"{message.ts}:critical_negation")
        elif positive and not state.critical_negated:
            state.critical = True
            state.signals.append(f"{message.ts}:critical")

        if any(r.kind == SignalKind.HOTFIX_COMMITMENT for r in hits):
            state.hotfix_commitment = True
            state.signals.append(f"{message.ts}:hotfix_commitment")

        logger.debug("Walked %s -> blocking=%s resolved=%s critical=%s",
                     message.ts, state.blocking, state.resolved, state.critical)
        return state

    def _blocking_hit(self, text: str, hits: List[SignalRule]) -> Optional[SignalRule]:
        if self.library.is_ui_context(text) or self.library.is_ad_blocker_chatter(text):
            return None
        qualified = any(r.kind == SignalKind.HOTFIX_QUALIFIER for r in hits)
        for rule in hits:
            if rule.kind != SignalKind.BLOCKING:
                continue
            if rule.label == "hotfix" and qualified:
                continue
            return rule
        return None
