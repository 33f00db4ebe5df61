"""
Test Status Classification

Reads a failed-test report thread (an automated test bot posts the failures,
humans reply) and decides the current review status of every failed test,
using the same chronological walk as blocker consensus.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import unquote

from ..common.schemas import RawMessage
from .consensus import chronological_walk
from .patterns import SignalKind, SignalRule

NEEDS_REVIEW = "needs review"
AWAITING_REVIEW = "awaiting review"
BOT_PRIORITY_CAP = 30


def _status(label: str, pattern: str, priority: int) -> SignalRule:
    return SignalRule(SignalKind.TEST_STATUS, label, re.compile(pattern, re.IGNORECASE), priority)


TEST_STATUS_RULES = tuple(sorted((
    _status("still failing", r"still\s+failing", 90),
    _status("resolved", r"manual\s+re[-\s]?run\s+successful|passed\s+on\s+re[-\s]?run|re[-\s]?run\s+passed", 85),
    _status("resolved", r"pass(?:ed|es|ing)?|did\s+pass|fixed|resolved|green", 85),
    _status("revert", r"revert", 80),
    _status("not blocking", r"\bnot\s+blocking\b", 80),
    _status("rerun in progress",
            r"(?:started|starting|kicked(?:\s+off)?|triggered|triggering)\s+(?:a\s+)?re[-\s]?run"
            r"|re[-\s]?running\s+(?:now|again|today)|rerun\s+in\s+progress", 70),
    _status("fix in progress", r"fix.*review|should\s+be\s+fixed", 65),
    _status("assigned", r"on\s+me|my\s+responsibility|i'll\s+take|assigned\s+to\s+me", 55),
    _status("investigating", r"investigat|working\s+on|looking\s+into|i'll\s+look|as\s+we\s+speak", 50),
    _status("flakey", r"(?:pass(?:es|ed|ing)?|works)\s+(?:for\s+me\s+)?locally|\bflak(?:e|y)\b", 45),
    _status("test update required", r"test.*updat|button.*moved|selector.*chang|selector.*moved", 45),
    _status("needs repro", r"cannot\s+repro(?:duce)?|can[’'`]t\s+repro(?:duce)?|cant\s+repro(?:duce)?", 40),
    _status("root cause identified", r"root\s+cause|specific.*fix|technical.*reason", 40),
    _status("acknowledged", r"known\s+issue|already\s+aware|acknowledged", 35),
    _status("explained", r"explained|setup\s+issue|test\s+issue|just.*issue", 35),
), key=lambda r: -r.priority))

_GENERIC_STATUS = re.compile(r"pass|fail|flak|fix|resolved|blocked|investigat|locally", re.IGNORECASE)

_TEST_FILE = re.compile(r"[\w\-]+(?:\.test|_spec|\.spec|_test)\.[jt]sx?", re.IGNORECASE)
_SPECS_FOR_REVIEW = re.compile(r"([\w\-/]+(?:_spec)?\.tsx?)\s+\d+\s+failed", re.IGNORECASE)
_BACKTICK_TEST = re.compile(r"`([\w\-]+(?:\.test|_spec|\.spec|_test)?\.tsx?)`", re.IGNORECASE)

_NAME_BLOCKLIST = re.compile(
    r"^(?:index|config|setup|utils?|helpers?|types?|constants?|models?|services?|playwright|cypress"
    r"|jest|mocha|failed|passed|test|tests|spec|specs|pages?|components?|report|reports)$",
    re.IGNORECASE,
)
_PATH_BLOCKLIST = re.compile(r"/(?:pages|components|helpers|utils|fixtures|support)/", re.IGNORECASE)
_OBJECT_SUFFIX = re.compile(r"(?:Page|Component|Helper|Util|Service)$", re.IGNORECASE)


def _normalize_test_name(raw: str) -> str:
    base = raw.lstrip("/").rsplit("/", 1)[-1]
    base = re.sub(r"\.[tj]sx?$", "", base, flags=re.IGNORECASE)
    return re.sub(r"(?:\.test|\.spec|_test|_spec)$", "", base, flags=re.IGNORECASE)


def extract_failed_test_names(text: str) -> List[str]:
    """Normalized names of failed tests mentioned in a report, first-seen order."""
    processed = unquote(text or "")
    matches = (
        _TEST_FILE.findall(processed)
        + _SPECS_FOR_REVIEW.findall(processed)
        + _BACKTICK_TEST.findall(processed)
    )

    names: List[str] = []
    for match in matches:
        if _PATH_BLOCKLIST.search(match):
            continue
        name = _normalize_test_name(match)
        if len(name) < 5 or _NAME_BLOCKLIST.match(name) or _OBJECT_SUFFIX.search(name):
            continue
        if name not in names:
            names.append(name)
    return names


@dataclass
class ReviewState:
    """Per-test status accumulated by the walk"""
    tests: List[str]
    statuses: Dict[str, str] = field(default_factory=dict)
    priorities: Dict[str, int] = field(default_factory=dict)


def _mentioned_tests(text: str, tests: Sequence[str]) -> List[str]:
    return [
        t for t in tests
        if re.search(re.escape(t) + r"(?:\.(?:test|spec))?(?:\.[jt]sx?)?", text, re.IGNORECASE)
    ]


def _reduce(state: ReviewState, message: RawMessage, hits: List[SignalRule]) -> ReviewState:
    if not hits:
        return state

    text = message.text or ""
    mentioned = _mentioned_tests(text, state.tests)
    targets = mentioned or (state.tests if _GENERIC_STATUS.search(text) else [])
    if not targets:
        return state

    is_human = bool(message.user) and not message.is_bot
    best_label, best_priority = "", -1
    for rule in hits:
        priority = rule.priority if is_human else min(rule.priority, BOT_PRIORITY_CAP)
        if priority > best_priority:
            best_label, best_priority = rule.label, priority

    for test in targets:
        if best_priority >= state.priorities.get(test, -1):
            state.statuses[test] = best_label
            state.priorities[test] = best_priority
    return state


def classify_test_statuses(
    anchor: RawMessage,
    replies: Sequence[RawMessage] = (),
    test_names: Optional[Sequence[str]] = None,
) -> Dict[str, str]:
    """
    Current status of every failed test in a report thread.

    Args:
        anchor: The report message
        replies: Thread replies, any order
        test_names: Known failed tests (extracted from the thread when omitted)

    Returns:
        Test name -> status label
    """
    tests = list(test_names) if test_names is not None else extract_failed_test_names(anchor.text)
    if test_names is None and replies:
        whole = extract_failed_test_names("\n".join([anchor.text] + [r.text for r in replies]))
        if len(whole) > len(tests):
            tests = whole

    if not replies:
        return {t: AWAITING_REVIEW for t in tests}

    # The report itself carries no review status, only its replies do
    state = chronological_walk(replies, TEST_STATUS_RULES, _reduce, ReviewState(tests=tests))
    return {t: state.statuses.get(t, NEEDS_REVIEW) for t in tests}
