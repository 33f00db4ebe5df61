"""
Pattern Library

One ordered table of signal rules used by every classifier in Blockwatch.
Rules carry a kind, a label and a priority; callers ask the library which
rules of a kind fire on a piece of text instead of keeping their own regexes.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple


class SignalKind(str, Enum):
    """What a matching rule says about a message"""
    BLOCKING = "blocking"
    RESOLUTION = "resolution"
    CRITICAL = "critical"
    CRITICAL_NEGATION = "critical_negation"
    HOTFIX_COMMITMENT = "hotfix_commitment"
    HOTFIX_QUALIFIER = "hotfix_qualifier"
    TEST_STATUS = "test_status"


@dataclass(frozen=True)
class SignalRule:
    """A single entry of the priority table"""
    kind: SignalKind
    label: str
    pattern: Pattern
    priority: int = 0

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text or ""))


def _rx(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


TICKET_KEY_PATTERN = re.compile(r"\b[A-Z]+-\d+\b")
TICKET_NUMBER_FRAGMENT = re.compile(r"\b\d{3,}\b")
GENERIC_BLOCKER_MENTION = _rx(r"\bblock(?:ers?|ing)\b")

BLOCKER_LIST_HEADERS = (
    re.compile(r"^\s*blockers?\b[^:\n]*:", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*blockers?\s+for\b", re.IGNORECASE | re.MULTILINE),
)
NEGATED_BLOCKER_MENTION = _rx(r"\b(?:not|no\s+longer|isn'?t|aren'?t)\s+(?:a\s+|really\s+)?block(?:ers?|ing)\b")
HOTFIX_LIST_HEADERS = (_rx(r"\blist\s+of\s+hotfixes\b"), _rx(r"\bhotfixes?\s*:"))
MENTIONED_HERE_LINK = re.compile(r"◦\s*Mentioned\s+(?:here)?(?:\s*:?\s*)?<([^|>]+)")
BULLET_LINE = re.compile(r"^\s*(?:[•\-*]|\d+[.)])\s+")

NO_GO_REACTION = _rx(r"^no[-_ ]?go$")

RELEASE_MANAGER_SUMMARY = _rx(r"frontend\s+release\s+(?:update|pipeline\s+aborted)")

AD_BLOCKER = _rx(r"\bad[-\s]?blockers?\b")
RELEASE_CONTEXT = _rx(r"\b(?:release|deploy(?:ment)?|prod(?:uction)?)\b")

UI_BLOCK_TERMS = tuple(_rx(p) for p in (
    r"add\s+block\s+dialog",
    r"create\s+block\s+panel",
    r"\bblock\s+dialog",
    r"\bblock\s+panel",
    r"\bcode\s+block",
    r"\btext\s+block",
    r"\bcontent\s+block",
    r"\bbuilding\s+block",
    r"\banswer\s+blocks?\b",
    r"\bquestion\s+blocks?\b",
    r"\bimage\s+blocks?\b",
    r"\bvideo\s+blocks?\b",
    r"\bslide\s+blocks?\b",
    r"\blayout\s+blocks?\b",
    r"\bblocks?\s+editor\b",
    r"\bblocks?\s+component\b",
    r"\binsert\s+blocks?\b",
    r"\bdelete\s+blocks?\b",
    r"\blabels\s+of\s+.*blocks\b",
))

# Seeds containing these phrases are dropped before analysis
NEGATIVE_SEED_PHRASES = (
    "not blocking",
    "not a blocker",
    "not urgent",
    "not critical",
    "not super high priority",
    "low priority",
    "no need to tackle immediately",
    "not tackle immediately",
    "not immediately",
    "no longer blocking",
)

FALLBACK_BLOCKING_KEYWORDS = ("blocker", "blocking", "hotfix", "no-go", "no go")
FALLBACK_NEGATIVE_KEYWORDS = ("not a blocker", "not blocking", "is this a blocker")


def _blocking_rules(gatekeeper_handle: str) -> List[SignalRule]:
    handle = re.escape(gatekeeper_handle.lstrip("@"))
    # "test-managers" also matches "test_managers" and "test managers"
    handle = handle.replace(r"\-", r"[-_ ]?")
    return [
        SignalRule(SignalKind.BLOCKING, "release blocker", _rx(r"release\s*blocker"), 100),
        SignalRule(SignalKind.BLOCKING, "blocker", _rx(r"\bblock(?:ers?|ing)\b"), 90),
        SignalRule(
            SignalKind.BLOCKING,
            "release context",
            _rx(r"\bblock(?:s|ing)?\b.*\b(?:release|deploy(?:ment)?|prod(?:uction)?)\b"),
            80,
        ),
        SignalRule(SignalKind.BLOCKING, "hotfix", _rx(r"\bhotfix(?:es|ing)?\b"), 70),
        SignalRule(SignalKind.BLOCKING, "gatekeeper", _rx(rf"@{handle}\b"), 60),
        SignalRule(SignalKind.BLOCKING, "no-go", _rx(r"\bno[-_\s]?go\b"), 50),
    ]


_RESOLUTION_RULES = [
    SignalRule(SignalKind.RESOLUTION, "not a blocker",
               _rx(r"\bnot\s+(?:a\s+)?(?:release\s+)?blocker\b"), 100),
    SignalRule(SignalKind.RESOLUTION, "no longer blocking",
               _rx(r"\bno\s+longer\s+(?:a\s+)?block(?:ing|er)\b"), 95),
    SignalRule(SignalKind.RESOLUTION, "not blocking",
               _rx(r"\b(?:not|isn'?t|aren'?t)\s+(?:\w+\s+){0,2}block(?:ing|er)\b"), 90),
    SignalRule(SignalKind.RESOLUTION, "fix ready",
               _rx(r"\bfix(?:\s+is)?\s+(?:ready|deployed|merged)\b"), 80),
    SignalRule(SignalKind.RESOLUTION, "hotfix deployed",
               _rx(r"\bhotfix(?:es)?\s+(?:is\s+|are\s+|was\s+|has\s+been\s+)?(?:deployed|released|merged|live)\b"), 75),
    SignalRule(SignalKind.RESOLUTION, "fixed",
               _rx(r"\b(?:fixed|resolved|reverted)\b"), 70),
    SignalRule(SignalKind.RESOLUTION, "start hotfixing",
               _rx(r"\b(?:can|will)\s+start\s+hotfixing\b"), 60),
    SignalRule(SignalKind.RESOLUTION, "good to release",
               _rx(r"\bgood\s+to\s+(?:go|release)\b"), 55),
    SignalRule(SignalKind.RESOLUTION, "done", _rx(r"\bdone\b"), 50),
]

_CRITICAL_RULES = [
    SignalRule(SignalKind.CRITICAL, "critical", _rx(r"\bcritical\b(?!\s*path)"), 30),
    SignalRule(SignalKind.CRITICAL, "urgent", _rx(r"\burgent\b"), 20),
    SignalRule(SignalKind.CRITICAL, "high priority", _rx(r"\bhigh\s+priority\b"), 10),
]

_CRITICAL_NEGATION_RULES = [
    SignalRule(SignalKind.CRITICAL_NEGATION, "not high priority",
               _rx(r"\bnot\s+(?:a\s+)?(?:super\s+)?high\s+priority\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "not urgent", _rx(r"\bnot\s+urgent\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "not critical", _rx(r"\bnot\s+critical\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "low priority", _rx(r"\blow\s+priority\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "no need to tackle immediately",
               _rx(r"\bno\s+need\s+to\s+tackle\s+immediately\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "not tackle immediately",
               _rx(r"\bnot\b.*\btackle\s+immediately\b")),
    SignalRule(SignalKind.CRITICAL_NEGATION, "not immediately", _rx(r"\bnot\s+immediate(?:ly)?\b")),
    SignalRule(
        SignalKind.CRITICAL_NEGATION,
        "windowed negation",
        _rx(r"\b(?:not|isn['’]?t|no|doesn['’]?t(?:\s+have)?)\b(?:\W+\w+){0,4}\W+(?:critical|urgent|high\s+priority)\b"),
    ),
]

_HOTFIX_COMMITMENT_RULES = [
    SignalRule(SignalKind.HOTFIX_COMMITMENT, "will hotfix",
               _rx(r"\b(?:will|going\s+to|gonna|need\s+to|must|should)\s+hotfix\b")),
    SignalRule(SignalKind.HOTFIX_COMMITMENT, "list of hotfixes", _rx(r"\blist\s+of\s+hotfixes\b")),
    SignalRule(SignalKind.HOTFIX_COMMITMENT, "hotfixes header", _rx(r"\bhotfix(?:es)?\s*:")),
    SignalRule(SignalKind.HOTFIX_COMMITMENT, "hotfix pr", _rx(r"\bhotfix\s+(?:pr|branch)\b")),
    SignalRule(SignalKind.HOTFIX_COMMITMENT, "prepare hotfix", _rx(r"\bprepare\s+(?:an?\s+)?hotfix\b")),
]

_HOTFIX_QUALIFIER_RULES = [
    SignalRule(SignalKind.HOTFIX_QUALIFIER, "ready",
               _rx(r"\b(?:ready|complete[d]?|done|deployed|merged|start(?:ed|ing)?)\b")),
]

# Bulleted hotfix entries ("• PROJ-1 hotfix") pin a ticket like a commitment does
_HOTFIX_BULLET = _rx(r"(?:^|\n)\s*[•\-*].*\bhotfix")


class PatternLibrary:
    """
    Compiled signal table.

    Rules of each kind are kept in descending priority, so the first match
    of a kind is also the most specific one.
    """

    def __init__(self, gatekeeper_handle: str = "test-managers"):
        """
        Initialize pattern library.

        Args:
            gatekeeper_handle: Chat handle whose mention escalates to release gatekeepers
        """
        self.gatekeeper_handle = gatekeeper_handle
        rules = (
            _blocking_rules(gatekeeper_handle)
            + _RESOLUTION_RULES
            + _CRITICAL_RULES
            + _CRITICAL_NEGATION_RULES
            + _HOTFIX_COMMITMENT_RULES
            + _HOTFIX_QUALIFIER_RULES
        )
        self._rules: Tuple[SignalRule, ...] = tuple(
            sorted(rules, key=lambda r: -r.priority)
        )

    @property
    def rules(self) -> Tuple[SignalRule, ...]:
        return self._rules

    def rules_of(self, kind: SignalKind) -> List[SignalRule]:
        return [r for r in self._rules if r.kind == kind]

    def matching(self, kind: SignalKind, text: str) -> List[SignalRule]:
        """All rules of a kind matching text, most specific first."""
        return [r for r in self._rules if r.kind == kind and r.matches(text)]

    def first_match(self, kind: SignalKind, text: str) -> Optional[SignalRule]:
        for rule in self._rules:
            if rule.kind == kind and rule.matches(text):
                return rule
        return None

    def any_match(self, kind: SignalKind, text: str) -> bool:
        return self.first_match(kind, text) is not None

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def is_ui_context(text: str) -> bool:
        """Text uses "block" as UI terminology (code block, answer blocks, ...)."""
        return any(p.search(text or "") for p in UI_BLOCK_TERMS)

    @staticmethod
    def is_ad_blocker_chatter(text: str) -> bool:
        """Text talks about ad blockers without any release context."""
        text = text or ""
        return bool(AD_BLOCKER.search(text)) and not RELEASE_CONTEXT.search(text)

    def blocking_rule_for(self, text: str) -> Optional[SignalRule]:
        """
        Most specific blocking rule for text, honoring guards.

        UI terminology and ad-blocker chatter never block. The hotfix rule
        is skipped when the message also says the fix is ready, done or starting.
        """
        if self.is_ui_context(text) or self.is_ad_blocker_chatter(text):
            return None
        qualified = self.any_match(SignalKind.HOTFIX_QUALIFIER, text)
        for rule in self.rules_of(SignalKind.BLOCKING):
            if rule.label == "hotfix" and qualified:
                continue
            if rule.matches(text):
                return rule
        return None

    def is_hotfix_context(self, text: str) -> bool:
        """Text commits to a hotfix or lists hotfixes."""
        return self.any_match(SignalKind.HOTFIX_COMMITMENT, text) or bool(_HOTFIX_BULLET.search(text or ""))

    @staticmethod
    def is_release_manager_summary(text: str) -> bool:
        return bool(RELEASE_MANAGER_SUMMARY.search(text or ""))

    @staticmethod
    def has_negative_seed_phrase(text: str) -> bool:
        lowered = (text or "").lower()
        return any(phrase in lowered for phrase in NEGATIVE_SEED_PHRASES)

    @staticmethod
    def is_no_go_reaction(name: str) -> bool:
        return bool(NO_GO_REACTION.match(name or ""))

    @staticmethod
    def labels(rules: Iterable[SignalRule]) -> List[str]:
        return [r.label for r in rules]


def build_search_queries(terms: Iterable[str], date: Optional[str] = None) -> List[str]:
    """Attach a date modifier to each seed term ("on:today" when no date is given)."""
    day = f"on:{date}" if date else "on:today"
    return [f"{term} {day}" for term in terms]
