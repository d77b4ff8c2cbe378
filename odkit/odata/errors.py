"""
odkit.odata.errors - Error taxonomy
===================================

All errors raised by the metadata model, property types, entity runtime
and query builder derive from :class:`ODataError`.
"""

from __future__ import annotations

from typing import Optional


class ODataError(Exception):
    """Base class for every odkit error."""


class ValidationError(ODataError, ValueError):
    """
    A value violates the acceptance rule of its property type.

    Attributes
    ----------
    reason : str
        Human-readable reason
    property_name : str, optional
        Name of the offending property
    """

    def __init__(self, reason: str, property_name: Optional[str] = None):
        if property_name:
            super().__init__(f"{property_name}: {reason}")
        else:
            super().__init__(reason)
        self.reason = reason
        self.property_name = property_name


class NotFoundError(ODataError, LookupError):
    """Unknown entity set, property, type reference or registry key."""

    def __str__(self) -> str:
        # LookupError would repr() a single argument
        return str(self.args[0]) if self.args else ""


class ConstructionError(ODataError):
    """The metadata document is malformed or references unknown types."""


class TransportError(ODataError, RuntimeError):
    """Raised by the HTTP boundary; the core never interprets it."""
