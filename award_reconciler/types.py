"""
Shared type definitions for award-reconciler.

This module provides centralized type aliases and protocols used across
the codebase, ensuring consistency and reducing duplication.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol, runtime_checkable

# ============================================================================
# Type Aliases
# ============================================================================

CabinClass = Literal["Y", "W", "J", "F"]
"""
Cabin class letters used in seat counts and price bundles.

- "Y": Economy
- "W": Premium economy
- "J": Business
- "F": First
"""

CacheBackend = Literal["memory", "sqlite"]
"""Storage backend for the live-search cache."""

Clock = Callable[[], float]
"""Zero-argument callable returning the current time in epoch seconds."""


# ============================================================================
# Protocols (Interfaces)
# ============================================================================

@runtime_checkable
class ResponseProtocol(Protocol):
    """Protocol for HTTP response objects returned by a live-search transport."""

    @property
    def status_code(self) -> int:
        """HTTP status code."""
        ...

    @property
    def text(self) -> str:
        """Response body as text."""
        ...


Transport = Callable[[str, dict], ResponseProtocol]
"""POST a JSON payload to a URL and return the response."""


# ============================================================================
# Shared Response Class
# ============================================================================

@dataclass
class DummyResponse:
    """
    A simple response object matching ResponseProtocol.

    Used by stub transports and tests in place of a real HTTP response.

    Attributes:
        status_code: HTTP status code
        text: The response body text
    """
    status_code: int
    text: str = ""

    @classmethod
    def from_json(cls, payload: Any, status_code: int = 200) -> "DummyResponse":
        return cls(status_code=status_code, text=json.dumps(payload))

    def json(self) -> Any:
        return json.loads(self.text)


# ============================================================================
# Constants
# ============================================================================

CABIN_CLASSES: tuple[CabinClass, ...] = ("Y", "W", "J", "F")
"""All cabin classes in display order."""

CABIN_NAMES: dict[str, str] = {
    "Y": "Economy",
    "W": "Premium Economy",
    "J": "Business",
    "F": "First",
}


__all__ = [
    # Type aliases
    "CabinClass",
    "CacheBackend",
    "Clock",
    "Transport",
    # Protocols
    "ResponseProtocol",
    # Classes
    "DummyResponse",
    # Constants
    "CABIN_CLASSES",
    "CABIN_NAMES",
]
