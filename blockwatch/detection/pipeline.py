"""
Issue Detection Pipeline

Fetch → Extract → Analyze → Deduplicate → Refine.

Seeds come from concurrent searches, threads are expanded once each, the
context analyzer produces per-ticket verdicts, the deduplicator keeps one
per ticket, and the classifier (when a model is available) drops the
blocking verdicts it is confident are false positives.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..common.config import BlockwatchConfig, DetectionConfig, load_config
from ..common.errors import PipelineError
from ..common.llm_client import LLMClient
from ..common.schemas import Issue, RawMessage, Severity, SeverityFilter, TicketReference, excerpt
from .classifier import BlockerClassifier, select_classifier
from .context_analyzer import ContextAnalyzer
from .deduplicator import SmartDeduplicator
from .extractor import TicketExtractor
from .handlers.base import BaseChatClient
from .handlers.slack import SlackClient
from .message_service import SlackMessageService
from .patterns import PatternLibrary

logger = logging.getLogger("blockwatch.detection.pipeline")

SEVERITY_SELECTION = {
    SeverityFilter.BLOCKING: {Severity.BLOCKING, Severity.BLOCKING_RESOLVED},
    SeverityFilter.CRITICAL: {Severity.CRITICAL},
    SeverityFilter.BOTH: {Severity.BLOCKING, Severity.BLOCKING_RESOLVED, Severity.CRITICAL},
}


@dataclass
class PipelineValidation:
    """Pre-flight check of the pipeline's collaborators"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class DetectionReport:
    """Issues plus the bookkeeping of the run that produced them"""
    issues: List[Issue]
    analyzed_threads: int = 0
    total_messages: int = 0
    processing_time: float = 0.0  # seconds
    errors: List[str] = field(default_factory=list)


class IssueDetectionPipeline:
    """
    Orchestrates one detection run per (channel, date).

    Nothing is kept between runs; every verdict is rebuilt from the messages.
    """

    def __init__(
        self,
        message_service: Optional[SlackMessageService],
        pattern_matcher: Optional[TicketExtractor],
        context_analyzer: Optional[ContextAnalyzer],
        deduplicator: Optional[SmartDeduplicator],
        classifier: Optional[BlockerClassifier] = None,
        config: Optional[DetectionConfig] = None,
    ):
        self.message_service = message_service
        self.pattern_matcher = pattern_matcher
        self.context_analyzer = context_analyzer
        self.deduplicator = deduplicator
        self.classifier = classifier
        self.config = config or DetectionConfig()

    def validate_pipeline(self) -> PipelineValidation:
        errors = []
        if self.message_service is None:
            errors.append("SlackMessageService is not configured")
        if self.pattern_matcher is None:
            errors.append("PatternMatcher is not configured")
        if self.context_analyzer is None:
            errors.append("ContextAnalyzer is not configured")
        if self.deduplicator is None:
            errors.append("Deduplicator is not configured")
        return PipelineValidation(is_valid=not errors, errors=errors)

    async def close(self) -> None:
        """Close the chat client shared by the message service and the analyzer."""
        if self.message_service is not None:
            await self.message_service.client.close()

    async def detect_issues(self, channel: str, date: Optional[str] = None) -> List[Issue]:
        report = await self.detect_issues_with_details(channel, date)
        return report.issues

    async def find_issues(
        self,
        channel: str,
        date: Optional[str] = None,
        severity: Union[SeverityFilter, str] = SeverityFilter.BOTH,
    ) -> List[Issue]:
        """
        Detect issues and keep those matching a severity selector.

        "blocking" also returns resolved blockers; "both" returns everything.
        """
        selector = SeverityFilter(severity)
        wanted = SEVERITY_SELECTION[selector]
        return [i for i in await self.detect_issues(channel, date) if i.severity in wanted]

    async def detect_issues_with_details(self, channel: str, date: Optional[str] = None) -> DetectionReport:
        validation = self.validate_pipeline()
        if not validation.is_valid:
            raise PipelineError("; ".join(validation.errors))

        started = time.monotonic()
        try:
            report = await self._run(channel, date)
        except PipelineError:
            raise
        except Exception as e:
            logger.exception("Issue detection failed for %s", channel)
            raise PipelineError(str(e) or type(e).__name__) from e

        report.processing_time = time.monotonic() - started
        logger.info("Detected %d issues in %s (%.2fs)", len(report.issues), channel, report.processing_time)
        return report

    async def _run(self, channel: str, date: Optional[str]) -> DetectionReport:
        # Fetch
        seeds = await self.message_service.find_blocker_messages(channel, date)
        errors = list(getattr(self.message_service, "last_search_errors", []))
        messages = await self._expand_threads(seeds, channel)

        # Extract
        list_issues, tickets = self._extract(messages)

        # Analyze
        analyzed = await self.context_analyzer.analyze_tickets(tickets, messages, channel)

        # Deduplicate
        issues = self.deduplicator.deduplicate_with_priority(list_issues + analyzed)

        # Refine
        issues = await self._refine(issues, messages)

        return DetectionReport(
            issues=issues,
            analyzed_threads=len({m.thread_id for m in messages}),
            total_messages=len(messages),
            errors=errors,
        )

    async def _expand_threads(self, seeds: List[RawMessage], channel: str) -> List[RawMessage]:
        """Fetch each thread once, concurrently; merged with seeds, unique by ts."""
        to_fetch: Dict[str, RawMessage] = {}
        for seed in seeds:
            thread_id = self.message_service.extract_thread_id(seed)
            if thread_id:
                to_fetch.setdefault(thread_id, seed)

        contexts = await asyncio.gather(
            *(self.message_service.get_thread_context(seed, channel) for seed in to_fetch.values())
        )

        merged: Dict[str, RawMessage] = {}
        for message in seeds:
            merged.setdefault(message.ts, message)
        # fetched copies carry the authoritative thread fields
        for context in contexts:
            for message in context:
                existing = merged.get(message.ts)
                if existing is not None and existing.permalink and not message.permalink:
                    message = message.model_copy(update={"permalink": existing.permalink})
                if existing is not None and existing.thread_ts and not message.thread_ts:
                    message = message.model_copy(update={"thread_ts": existing.thread_ts})
                merged[message.ts] = message
        return list(merged.values())

    def _extract(self, messages: List[RawMessage]):
        list_issues: List[Issue] = []
        tickets: Dict[str, TicketReference] = {}

        for message in messages:
            for entry in self.pattern_matcher.parse_blocker_entries(message.text):
                tickets.setdefault(entry.ticket.key, entry.ticket)
                list_issues.append(Issue(
                    severity=Severity.BLOCKING,
                    text=excerpt(message.text, self.config.excerpt_length),
                    tickets=[entry.ticket],
                    timestamp=message.ts,
                    has_thread=False,
                    permalink=entry.thread_link,
                    hotfix_commitment=entry.is_hotfix_list,
                ))
            for ticket in self.pattern_matcher.extract_tickets(message.text):
                tickets.setdefault(ticket.key, ticket)

        if list_issues:
            logger.info("Found %d list-only blockers", len(list_issues))
        return list_issues, list(tickets.values())

    async def _refine(self, issues: List[Issue], messages: List[RawMessage]) -> List[Issue]:
        classifier = self.classifier
        if classifier is None or not self.config.use_llm_classification:
            return issues

        candidates = [i for i in issues if i.severity == Severity.BLOCKING]
        if not candidates or not classifier.is_available:
            return issues

        by_ts = {m.ts: m for m in messages}
        items = []
        for issue in candidates:
            message = by_ts.get(issue.timestamp) or RawMessage(ts=issue.timestamp, text=issue.text)
            context = [m for m in messages if m.thread_id == issue.timestamp and m.ts != message.ts]
            items.append((message, context))

        results = await classifier.classify_messages(items, self.config.classifier_concurrency)
        verdicts = {id(issue): result for issue, result in zip(candidates, results)}

        refined: List[Issue] = []
        for issue in issues:
            result = verdicts.get(id(issue))
            if result is None or result.used_fallback:
                refined.append(issue)
                continue
            if (not result.is_blocker and not issue.hotfix_commitment
                    and result.confidence >= self.config.min_llm_confidence):
                logger.info("Classifier dropped %s: %s", ",".join(issue.ticket_keys), result.reasoning)
                continue
            refined.append(issue.model_copy(update={
                "llm_confidence": result.confidence,
                "llm_reasoning": result.reasoning,
            }))
        return refined


def build_pipeline(
    config: Optional[BlockwatchConfig] = None,
    client: Optional[BaseChatClient] = None,
    llm: Optional[LLMClient] = None,
) -> IssueDetectionPipeline:
    """
    Wire a pipeline from configuration.

    Args:
        config: Loaded configuration (load_config() when omitted)
        client: Chat client (a SlackClient built from config when omitted)
        llm: Language model client (built from config when LLM classification is on)
    """
    config = config or load_config()
    client = client or SlackClient.from_config(config.slack)
    library = PatternLibrary(config.tracker.gatekeeper_handle)
    extractor = TicketExtractor(library, config.tracker.base_url)

    classifier = None
    if config.detection.use_llm_classification:
        llm = llm or LLMClient.from_config(config.llm)
        classifier = select_classifier(
            llm,
            gatekeeper_handle=config.tracker.gatekeeper_handle,
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
            timeout=config.llm.timeout,
        )

    return IssueDetectionPipeline(
        message_service=SlackMessageService(client, library, config.detection.search_terms),
        pattern_matcher=extractor,
        context_analyzer=ContextAnalyzer(client, extractor, excerpt_length=config.detection.excerpt_length),
        deduplicator=SmartDeduplicator(),
        classifier=classifier,
        config=config.detection,
    )
