"""Streaming parse engine."""

from .parser import DataParser, ParseResult

__all__ = ["DataParser", "ParseResult"]
