"""
Chat Platform Clients

Clients the detection core reads messages through.
"""

from .base import BaseChatClient
from .slack import SlackClient

__all__ = [
    "BaseChatClient",
    "SlackClient",
]
