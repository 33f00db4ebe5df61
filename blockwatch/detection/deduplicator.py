"""
Smart Deduplicator

Collapses every signal about a ticket into a single Issue, preferring the
most severe, then explicit hotfix commitments, then the richest context.
"""

import logging
from typing import Dict, List, Sequence

from ..common.schemas import Issue, Severity

logger = logging.getLogger("blockwatch.detection.deduplicator")

SEVERITY_RANK = {
    Severity.BLOCKING: 0,
    Severity.BLOCKING_RESOLVED: 1,
}


def severity_rank(issue: Issue) -> int:
    return SEVERITY_RANK.get(issue.severity, 2)


def presence_tier(issue: Issue) -> int:
    """0: thread and permalink, 1: thread only, 2: permalink only, 3: neither."""
    if issue.has_thread and issue.permalink:
        return 0
    if issue.has_thread:
        return 1
    if issue.permalink:
        return 2
    return 3


class SmartDeduplicator:
    """
    Priority-based per-ticket deduplication.

    For each ticket key:
    1. Keep issues at the best severity rank (blocking, blocking_resolved, other)
    2. Narrow to hotfix commitments if any
    3. Take the most recent issue of the first non-empty presence tier

    Output follows first-seen ticket order and never repeats an issue, so
    running the deduplicator on its own output changes nothing.
    """

    def deduplicate_with_priority(self, issues: Sequence[Issue]) -> List[Issue]:
        by_key: Dict[str, List[Issue]] = {}
        for issue in issues:
            for key in issue.ticket_keys:
                by_key.setdefault(key, []).append(issue)

        selected: List[Issue] = []
        emitted = set()
        for key, candidates in by_key.items():
            best = self.select_best(candidates)
            if id(best) in emitted:
                continue
            emitted.add(id(best))
            selected.append(best)

        if len(selected) != len(issues):
            logger.info("Deduplicated %d issues into %d", len(issues), len(selected))
        return selected

    @staticmethod
    def select_best(candidates: Sequence[Issue]) -> Issue:
        best_rank = min(severity_rank(i) for i in candidates)
        pool = [i for i in candidates if severity_rank(i) == best_rank]

        hotfix = [i for i in pool if i.hotfix_commitment]
        if hotfix:
            pool = hotfix

        best_tier = min(presence_tier(i) for i in pool)
        tier = [i for i in pool if presence_tier(i) == best_tier]
        # max keeps the first of equally recent issues
        return max(tier, key=lambda i: i.sort_key)
