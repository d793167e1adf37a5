"""
Quote Stream Models
Control-message framing for the quote stream protocol and request bodies
for the quote stream service
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class ControlType(str, Enum):
    """Control message types understood by the quote server"""
    ADD = "add"
    REMOVE = "remove"
    SUBSCRIBE = "subscribe"  # replaces the whole server-side interest set


class ControlMessage(BaseModel):
    """
    One outbound control frame

    Wire format: {"type": "add"|"remove"|"subscribe", "symbols": [...]}
    """
    type: ControlType
    symbols: List[str] = Field(..., min_length=1, description="Canonical symbols, first-seen order")

    def to_wire(self) -> str:
        """Serialize to the compact JSON text frame sent on the socket"""
        return self.model_dump_json()


class SymbolInputRequest(BaseModel):
    """Replace the raw symbol input text"""
    text: str = ""


class SymbolActionRequest(BaseModel):
    """
    Body for add/remove/subscribe actions

    When `symbols` is omitted the current raw input is used.
    """
    symbols: Optional[str] = None
