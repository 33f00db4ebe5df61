"""
Blockwatch Schemas

Typed shapes shared by the detection core and its collaborators.
"""

from .issue import (
    Issue,
    RawMessage,
    Reaction,
    Severity,
    SeverityFilter,
    TicketReference,
    excerpt,
    ts_value,
)

__all__ = [
    "Issue",
    "RawMessage",
    "Reaction",
    "Severity",
    "SeverityFilter",
    "TicketReference",
    "excerpt",
    "ts_value",
]
