"""
Issue Detection - Release Blocker Verdicts from Chat

Reads the messages posted around a release and decides, per ticket, whether
it is an active blocker, a critical non-blocking issue, or a resolved blocker.

Key Components:
- PatternLibrary: Ordered signal table shared by every classifier
- TicketExtractor: Ticket references, indicators and blocker lists
- ThreadConsensusResolver: Chronological walk over a thread
- ContextAnalyzer: Per-ticket verdicts from grouped threads
- BlockerClassifier: Semantic judgment with pattern fallback
- SmartDeduplicator: One verdict per ticket
- IssueDetectionPipeline: Fetch → Extract → Analyze → Deduplicate → Refine

Rules for verdicts:
1. The latest statement in a thread governs
2. Within one message, resolution language beats blocking language
3. Critical negation wins and sticks
4. Hotfixes exist only for blockers
5. UI "blocks" are never blockers
6. Thread context beats a bare list mention
"""

from .classifier import (
    BlockerClassifier,
    ClassificationResult,
    PatternClassifier,
    SemanticClassifier,
    select_classifier,
)
from .consensus import ConsensusResult, ThreadConsensusResolver, chronological_walk
from .context_analyzer import ContextAnalyzer
from .deduplicator import SmartDeduplicator
from .extractor import BlockerListEntry, TicketExtractor
from .message_service import SlackMessageService
from .patterns import PatternLibrary, SignalKind, SignalRule
from .pipeline import DetectionReport, IssueDetectionPipeline, PipelineValidation, build_pipeline
from .review_status import classify_test_statuses, extract_failed_test_names

__all__ = [
    "BlockerClassifier",
    "ClassificationResult",
    "PatternClassifier",
    "SemanticClassifier",
    "select_classifier",
    "ConsensusResult",
    "ThreadConsensusResolver",
    "chronological_walk",
    "ContextAnalyzer",
    "SmartDeduplicator",
    "BlockerListEntry",
    "TicketExtractor",
    "SlackMessageService",
    "PatternLibrary",
    "SignalKind",
    "SignalRule",
    "DetectionReport",
    "IssueDetectionPipeline",
    "PipelineValidation",
    "build_pipeline",
    "classify_test_statuses",
    "extract_failed_test_names",
]
