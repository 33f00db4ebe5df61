"""
Blockwatch

Release-blocker detection for chat channels that coordinate software releases.

Philosophy:
- Every verdict is reconstructed from the messages themselves (no stored state)
- The latest, most specific statement in a thread governs
- One verdict per ticket, preferring the richest context
- The language model is optional: patterns always give an answer

Usage:
    from blockwatch.common import load_config, LLMClient
    from blockwatch.common.schemas import Issue, RawMessage, Severity
    from blockwatch.detection import IssueDetectionPipeline, build_pipeline
"""

__version__ = "0.1.0"
