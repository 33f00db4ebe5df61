"""
Blockwatch MCP Server.

Transport: stdio only (launched by an MCP host).

Expected MCP Tool Return Format:
{
    "ok": bool,
    "results": Any,          # Present if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Annotated, Any, Dict, List, Optional

logger = logging.getLogger("blockwatch.mcp")
from pydantic import Field
from dotenv import load_dotenv
load_dotenv()

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from blockwatch.common.config import load_config
from blockwatch.common.errors import BlockwatchError, PipelineError
from blockwatch.common.schemas import Issue, RawMessage, SeverityFilter
from blockwatch.detection.classifier import BlockerClassifier, PatternClassifier
from blockwatch.detection.pipeline import IssueDetectionPipeline, build_pipeline


def _issue_payload(issue: Issue) -> Dict[str, Any]:
    return issue.model_dump(mode="json")


class BlockwatchMCPApp:
    """
    Main application class for the MCP server.

    The pipeline is built once; every tool call runs a fresh detection.
    """
    def __init__(
            self,
            pipeline: IssueDetectionPipeline,
            mcp_server_name: str = "blockwatch",
            default_channel: str = "",
        ) -> None:
        """
        Initializes the BlockwatchMCPApp.
        Args:
            pipeline (IssueDetectionPipeline): The issue detection pipeline.
            mcp_server_name (str): The name of the MCP server.
            default_channel (str): Channel used when a tool call omits one.
        """
        self.pipeline = pipeline
        self.default_channel = default_channel
        self.mcp = FastMCP(name=mcp_server_name)

        def _channel(channel: Optional[str]) -> str:
            channel = (channel or self.default_channel or "").strip()
            if not channel:
                raise ToolError("channel is required")
            return channel

        # ---------- MCP Tools: Detect Issues ---------- #
        @self.mcp.tool(
            name="detect_issues",
            description=(
                "Detect release blockers, critical issues and resolved blockers discussed in a "
                "chat channel on a given day. Returns one verdict per ticket."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_detect_issues(
            channel: Annotated[Optional[str], Field(description="channel name (#release or release) or id")] = None,
            date: Annotated[str, Field(description="day to scan, YYYY-MM-DD or 'today'")] = "today",
        ) -> Dict[str, Any]:
            """
            MCP tool to run the detection pipeline.

            Args:
                channel (str): Channel to scan.
                date (str): Day to scan.

            Returns:
                Dict[str, Any]: Issues, or the pipeline failure message.
            """
            target = _channel(channel)
            try:
                issues = await self.pipeline.detect_issues(target, date)
            except PipelineError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "results": [_issue_payload(i) for i in issues]}

        # ---------- MCP Tools: Find Issues ---------- #
        @self.mcp.tool(
            name="find_issues",
            description=(
                "Like detect_issues, filtered by severity: 'blocking' (active and resolved blockers), "
                "'critical', or 'both'."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_find_issues(
            channel: Annotated[Optional[str], Field(description="channel name or id")] = None,
            date: Annotated[str, Field(description="day to scan, YYYY-MM-DD or 'today'")] = "today",
            severity: Annotated[str, Field(description="'blocking', 'critical' or 'both'")] = "both",
        ) -> Dict[str, Any]:
            target = _channel(channel)
            try:
                selector = SeverityFilter((severity or "").lower())
            except ValueError as exc:
                raise ToolError(f"Invalid severity: {severity!r}. Use 'blocking', 'critical' or 'both'.") from exc
            try:
                issues = await self.pipeline.find_issues(target, date, selector)
            except PipelineError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "results": [_issue_payload(i) for i in issues]}

        # ---------- MCP Tools: Validate Pipeline ---------- #
        @self.mcp.tool(
            name="validate_pipeline",
            description="Check that every collaborator of the detection pipeline is configured.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_validate_pipeline() -> Dict[str, Any]:
            validation = self.pipeline.validate_pipeline()
            classifier = self.pipeline.classifier
            return {
                "ok": validation.is_valid,
                "results": {
                    "is_valid": validation.is_valid,
                    "errors": validation.errors,
                    "classifier": type(classifier).__name__ if classifier else None,
                },
            }

        # ---------- MCP Tools: Classify Message ---------- #
        @self.mcp.tool(
            name="classify_message",
            description=(
                "Judge whether a single message (with optional thread replies) is about an active "
                "release blocker. Uses the language model when available, keyword rules otherwise."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_classify_message(
            text: Annotated[str, Field(description="message text")],
            thread: Annotated[Optional[List[str]], Field(description="thread replies, oldest first")] = None,
        ) -> Dict[str, Any]:
            if not text or not text.strip():
                raise ToolError("text is required")
            classifier: BlockerClassifier = self.pipeline.classifier or PatternClassifier()
            message = RawMessage(ts="0", text=text)
            context = [RawMessage(ts=str(i + 1), text=t) for i, t in enumerate(thread or [])]
            results = await classifier.classify_messages([(message, context)])
            result = results[0]
            return {
                "ok": True,
                "results": {
                    "is_blocker": result.is_blocker,
                    "confidence": result.confidence,
                    "reasoning": result.reasoning,
                    "ticket_key": result.ticket_key,
                    "used_fallback": result.used_fallback,
                },
            }

    async def run_async(self) -> None:
        """Serves stdio until the host disconnects, then closes the chat client."""
        try:
            await self.mcp.run_async(transport="stdio")
        finally:
            await self.pipeline.close()
            logger.info("Blockwatch MCP server stopped")

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        asyncio.run(self.run_async())


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Blockwatch MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "blockwatch"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--channel",
        default=None,
        help="Default channel for tool calls that omit one.",
    )
    parser.add_argument(
        "--jira-base-url",
        default=None,
        help="Issue tracker base URL used to build ticket links.",
    )
    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Disable language-model classification (pattern rules only).",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("BLOCKWATCH_LOG_LEVEL", "INFO"),
        help="Logging level (stdout belongs to the stdio transport, logs go to stderr).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    if args.channel:
        config.slack.default_channel = args.channel
    if args.jira_base_url:
        config.tracker.base_url = args.jira_base_url
    if args.no_llm:
        config.detection.use_llm_classification = False

    try:
        pipeline = build_pipeline(config)
    except BlockwatchError as e:
        logger.error("Cannot start Blockwatch: %s", e)
        raise SystemExit(1)

    app = BlockwatchMCPApp(
        pipeline=pipeline,
        mcp_server_name=args.server_name,
        default_channel=config.slack.default_channel,
    )

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
