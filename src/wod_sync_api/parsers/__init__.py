"""Parsers for source activity records."""
from .activity_parser import ActivityParser, ParseError

__all__ = [
    "ActivityParser",
    "ParseError",
]
