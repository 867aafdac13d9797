from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union
from xml.sax.saxutils import escape


@dataclass(frozen=True, slots=True)
class EmailPayload:
    subject: str
    body: str


@dataclass(frozen=True, slots=True)
class TextPayload:
    body: str


@dataclass(frozen=True, slots=True)
class VoiceScript:
    """Spoken segments, separated by a short pause when played."""

    segments: Tuple[str, ...]
    voice: str = "alice"
    language: str = "en-US"
    pause_seconds: int = 1

    def to_twiml(self) -> str:
        lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
        for index, segment in enumerate(self.segments):
            if index:
                lines.append(f'  <Pause length="{self.pause_seconds}"/>')
            lines.append(
                f'  <Say voice="{escape(self.voice)}" language="{escape(self.language)}">'
                f"{escape(segment)}</Say>"
            )
        lines.append("</Response>")
        return "\n".join(lines)

    @property
    def text(self) -> str:
        return " ".join(self.segments)


RenderedMessage = Union[EmailPayload, TextPayload, VoiceScript]


@dataclass(frozen=True, slots=True)
class SendResult:
    success: bool
    provider_reference: Optional[str] = None


@dataclass(slots=True)
class RenderContext:
    title: Optional[str]
    start_time_local: Optional[str]
    minutes_remaining: Optional[int]
    description: Optional[str] = None
    links: List[str] = field(default_factory=list)
    recipient_name: Optional[str] = None
    occurred_at: Optional[datetime] = None
