"""
Pydantic models for data validation and serialization
"""

from .quote_stream import *

__all__ = [
    # Quote stream models
    "ControlType",
    "ControlMessage",
    "SymbolInputRequest",
    "SymbolActionRequest",
]
