"""Exception hierarchy shared by the detection core and its collaborators."""

from typing import Optional


class BlockwatchError(Exception):
    """Base class for all Blockwatch errors."""
    pass


class ChatClientError(BlockwatchError):
    """Error communicating with the chat platform."""
    pass


class SlackAPIError(ChatClientError):
    """Slack answered with ``ok: false`` or an HTTP error."""

    def __init__(self, method: str, error: str, status_code: Optional[int] = None):
        self.method = method
        self.error = error
        self.status_code = status_code
        super().__init__(f"Slack API call {method} failed: {error}")


class LLMUnavailableError(BlockwatchError):
    """The language model cannot be reached or is not configured."""
    pass


class PipelineError(BlockwatchError):
    """Issue detection failed as a whole."""

    PREFIX = "Issue detection pipeline failed"

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"{self.PREFIX}: {cause}")


class AllSearchesFailedError(PipelineError):
    """Every seed search against the chat platform failed."""

    def __init__(self, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__("All searches failed")
