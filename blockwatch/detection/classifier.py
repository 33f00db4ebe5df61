"""
Blocker Classifier: semantic judgment with a pattern fallback.

The semantic classifier asks a language model whether a message is about a
release blocker. Whenever the model is unavailable, errors out, times out or
answers with something unparsable, the pattern classifier answers instead,
so classification never raises to the caller.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import RawMessage
from .patterns import FALLBACK_BLOCKING_KEYWORDS, FALLBACK_NEGATIVE_KEYWORDS, TICKET_KEY_PATTERN

logger = logging.getLogger("blockwatch.detection.classifier")

FALLBACK_CONFIDENCE = 30
FALLBACK_REASONING = "Fallback classification (LLM unavailable)"

CLASSIFICATION_RUBRIC = """Is this Slack message about a RELEASE blocker?

STRONG BLOCKER SIGNALS:
- CC @{gatekeeper} = escalation to release gatekeepers, very likely a blocker
- "release blocker", "blocking the release", "hotfix needed", "will hotfix", "no go"

NOT AN ACTIVE RELEASE BLOCKER:
- "hotfix deployed", "fix is merged", "good to release" = already resolved
- "blocking us to retest/test" = workflow inconvenience, not a release blocker
- Questions like "Is this a blocker?"
- UI terms: "answer blocks", "code block", "add block dialog"
- "not blocking", "no longer blocking"
- "minor issue", "nice to fix", "legacy bugs" = not release critical

KEY: "blocking" alone often means workflow blocking. "release blocker" or @{gatekeeper} = actual release blocker.
"hotfix" alone is ambiguous: "will hotfix" is an open blocker, "hotfix deployed" is a fixed one."""

CLASSIFICATION_SCHEMA = {
    "title": "blocker_classification",
    "type": "object",
    "properties": {
        "isBlocker": {"type": "boolean"},
        "confidence": {"type": "integer", "minimum": 0, "maximum": 100},
        "reasoning": {"type": "string"},
    },
    "required": ["isBlocker", "confidence", "reasoning"],
}


@dataclass
class ClassificationResult:
    """Verdict of a blocker classifier"""
    is_blocker: bool
    confidence: int
    reasoning: str
    ticket_key: Optional[str] = None
    used_fallback: bool = False

    def __post_init__(self):
        try:
            value = int(round(float(self.confidence)))
        except (TypeError, ValueError):
            value = 0
        self.confidence = max(0, min(100, value))


def _first_ticket_key(text: str) -> Optional[str]:
    match = TICKET_KEY_PATTERN.search(text or "")
    return match.group(0) if match else None


class BlockerClassifier(ABC):
    """Interface shared by the semantic and pattern classifiers."""

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def classify_message(
        self,
        message: RawMessage,
        thread_context: Sequence[RawMessage] = (),
    ) -> ClassificationResult:
        pass

    async def classify_messages(
        self,
        items: Sequence[Tuple[RawMessage, Sequence[RawMessage]]],
        concurrency: int = 3,
    ) -> List[ClassificationResult]:
        """
        Classify (message, thread_context) pairs with at most ``concurrency``
        calls in flight. Results keep the input order.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def run(message: RawMessage, context: Sequence[RawMessage]) -> ClassificationResult:
            async with semaphore:
                return await asyncio.to_thread(self.classify_message, message, context)

        return list(await asyncio.gather(*(run(m, c) for m, c in items)))


class PatternClassifier(BlockerClassifier):
    """Keyword classifier: blocking keywords minus negative phrases, fixed low confidence."""

    @property
    def is_available(self) -> bool:
        return True

    def classify_message(
        self,
        message: RawMessage,
        thread_context: Sequence[RawMessage] = (),
    ) -> ClassificationResult:
        lowered = (message.text or "").lower()
        has_blocking = any(k in lowered for k in FALLBACK_BLOCKING_KEYWORDS)
        has_negative = any(k in lowered for k in FALLBACK_NEGATIVE_KEYWORDS)
        return ClassificationResult(
            is_blocker=has_blocking and not has_negative,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=FALLBACK_REASONING,
            ticket_key=_first_ticket_key(message.text),
            used_fallback=True,
        )


class SemanticClassifier(BlockerClassifier):
    """
    LLM-backed classifier.

    Token budget: ~400 tokens per call (rubric + message + thread + response).
    """

    def __init__(
        self,
        llm: LLMClient,
        fallback: Optional[BlockerClassifier] = None,
        gatekeeper_handle: str = "test-managers",
        temperature: float = 0.3,
        max_tokens: int = 256,
        timeout: float = 30.0,
    ):
        self._llm = llm
        self._fallback = fallback or PatternClassifier()
        self._rubric = CLASSIFICATION_RUBRIC.format(gatekeeper=gatekeeper_handle.lstrip("@"))
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def build_prompt(self, message: RawMessage, thread_context: Sequence[RawMessage] = ()) -> str:
        thread_text = "\n---\n".join(m.text for m in thread_context if m.text)
        parts = [self._rubric, "", f'Message: "{message.text or ""}"']
        if thread_text:
            parts.extend(["", "Thread context:", thread_text])
        parts.extend([
            "",
            "Output JSON only:",
            '{"isBlocker": true/false, "confidence": 0-100, "reasoning": "brief reason"}',
        ])
        return "\n".join(parts)

    def classify_message(
        self,
        message: RawMessage,
        thread_context: Sequence[RawMessage] = (),
    ) -> ClassificationResult:
        if not self.is_available:
            return self._fallback.classify_message(message, thread_context)

        try:
            raw = self._llm.generate(
                self.build_prompt(message, thread_context),
                max_tokens=self._max_tokens,
                timeout=self._timeout,
                temperature=self._temperature,
                response_schema=CLASSIFICATION_SCHEMA,
            )
        except Exception as e:
            logger.warning("LLM classification failed, using fallback: %s", e)
            return self._fallback.classify_message(message, thread_context)

        data = parse_llm_json(raw)
        if "isBlocker" not in data:
            logger.warning("Unparsable classifier response, using fallback: %.80r", raw)
            return self._fallback.classify_message(message, thread_context)

        return ClassificationResult(
            is_blocker=bool(data.get("isBlocker")),
            confidence=data.get("confidence", 50),
            reasoning=str(data.get("reasoning", "")),
            ticket_key=_first_ticket_key(message.text),
        )


def select_classifier(llm: Optional[LLMClient], gatekeeper_handle: str = "test-managers", **kwargs) -> BlockerClassifier:
    """
    Pick the classifier for a configured model.

    Any model client gets the semantic classifier, which re-checks
    availability on every call and uses patterns while the model is down.
    """
    if llm is None:
        logger.info("No LLM configured, using pattern blocker classifier")
        return PatternClassifier()
    if not llm.is_available:
        logger.info("LLM (%s) not available yet, classifying with patterns until it is", llm.provider)
    else:
        logger.info("Using semantic blocker classifier (%s)", llm.provider)
    return SemanticClassifier(llm, gatekeeper_handle=gatekeeper_handle, **kwargs)
