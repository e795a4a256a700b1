"""
Context Assembler

Turns retrieved vectors and events into the context string handed to the
generation step, plus the attribution references shown in the UI.

Layout:
    [preamble]
    <summary line>

    [1] (92.4% relevant) [Mar 14, 2024] text
    ...
    [Event 1] (80% confidence) [Mar 14, 2024, 03:00 PM] title: description

The whole string, preamble included, is bounded by max_length.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, List, Optional, Sequence

from ..common.errors import ValidationError
from ..common.schemas import ContextReference, DataType, ExtractedEvent, VectorMatch

logger = logging.getLogger("race.retriever.assembler")

NO_DATA_FALLBACK = (
    "No relevant data found in the user's personal history. "
    "Let the user know you need more data to answer their question."
)
ELLIPSIS = "..."
PHOTO_MARKER = "📸 Photo: "
DEFAULT_EVENT_CONFIDENCE = 0.7

LabelFn = Callable[[Optional[str]], str]


@dataclass
class AssembledContext:
    """Context string and the references backing it"""
    context: str
    references: List[ContextReference] = field(default_factory=list)
    truncated: bool = False


def parse_date_value(value) -> Optional[datetime]:
    """
    Interpret a metadata date.

    Numbers are epoch milliseconds; strings are ISO-8601 (naive means UTC).
    Returns None when the value cannot be read as a date.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    except (ValueError, OverflowError, OSError):
        return None
    return None


def format_day(moment: datetime, tz: tzinfo) -> str:
    """'Mar 14, 2024' in the given zone"""
    local = moment.astimezone(tz)
    return f"{local.strftime('%b')} {local.day}, {local.year}"


def format_day_time(moment: datetime, tz: tzinfo) -> str:
    """'Mar 14, 2024, 03:00 PM' in the given zone"""
    local = moment.astimezone(tz)
    return f"{format_day(local, tz)}, {local.strftime('%I:%M %p')}"


def rank_vectors(vectors: Sequence[VectorMatch]) -> List[VectorMatch]:
    """Score descending; ties keep retrieval order."""
    return sorted(vectors, key=lambda v: v.score, reverse=True)


def truncate(text: str, max_length: int) -> str:
    """Cut to max_length characters, the last of which are the ellipsis."""
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[:max_length]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


class ContextAssembler:
    """
    Ranks, formats, attributes and truncates retrieval results.

    Stateless; one instance can serve any number of concurrent queries.
    """

    def __init__(self, tz: tzinfo = timezone.utc):
        """
        Args:
            tz: Default zone for rendered dates
        """
        self._tz = tz

    def assemble(
        self,
        vectors: Sequence[VectorMatch],
        events: Sequence[ExtractedEvent],
        max_length: int,
        label_fn: Optional[LabelFn] = None,
        preamble: Optional[str] = None,
        header: Optional[str] = None,
        empty_fallback: Optional[str] = None,
        tz: Optional[tzinfo] = None,
    ) -> AssembledContext:
        """
        Build the context for a set of retrieved items.

        Args:
            vectors: Vector matches, any order
            events: Extracted events, rendered in the order given
            max_length: Upper bound on len(context)
            label_fn: Maps an item's userId to an attribution label (circle mode)
            preamble: Text placed before the summary line (e.g. counting instructions)
            header: Replaces the default summary line
            empty_fallback: Replaces the default no-data sentence
            tz: Zone for rendered dates; defaults to the assembler's

        Returns:
            AssembledContext with references mirroring the ranked vectors
        """
        if max_length < 1:
            raise ValidationError(f"max_length must be positive, got {max_length}")

        zone = tz or self._tz

        if not vectors and not events:
            return AssembledContext(context=empty_fallback or NO_DATA_FALLBACK)

        ranked = rank_vectors(vectors)
        parts = [self._format_vector(i, v, zone, label_fn) for i, v in enumerate(ranked, start=1)]
        parts.extend(self._format_event(i, e, zone) for i, e in enumerate(events, start=1))

        if header is None:
            header = self._summary_line(len(ranked), len(events))

        context = f"{header}\n\n" + "\n\n".join(parts)
        if preamble:
            context = preamble + context

        bounded = truncate(context, max_length)
        if len(bounded) < len(context):
            logger.info("Context truncated from %d to %d chars", len(context), len(bounded))

        references = [
            ContextReference(
                id=v.id,
                score=v.score,
                type=v.metadata.type,
                snippet=v.metadata.text,
                user_id=v.metadata.user_id,
            )
            for v in ranked
        ]

        return AssembledContext(context=bounded, references=references, truncated=len(bounded) < len(context))

    @staticmethod
    def _summary_line(vector_count: int, event_count: int) -> str:
        if event_count:
            return (
                f"Relevant information from the user's personal data ({vector_count} items) "
                f"and extracted events ({event_count} events):"
            )
        return f"Relevant information from the user's personal data ({vector_count} items):"

    @staticmethod
    def _format_vector(index: int, vector: VectorMatch, tz: tzinfo, label_fn: Optional[LabelFn]) -> str:
        metadata = vector.metadata
        line = f"[{index}] ({vector.score * 100:.1f}% relevant) "

        if label_fn is not None:
            line += f"[{label_fn(metadata.user_id)}] "

        moment = parse_date_value(metadata.date_value)
        if moment is not None:
            line += f"[{format_day(moment, tz)}] "

        if metadata.type == DataType.PHOTO.value:
            line += PHOTO_MARKER
        return line + metadata.text

    @staticmethod
    def _format_event(index: int, event: ExtractedEvent, tz: tzinfo) -> str:
        confidence = event.confidence if event.confidence is not None else DEFAULT_EVENT_CONFIDENCE
        when = event.when if event.when.tzinfo else event.when.replace(tzinfo=timezone.utc)
        line = (
            f"[Event {index}] ({confidence * 100:.0f}% confidence) "
            f"[{format_day_time(when, tz)}] {event.title}"
        )
        if event.description:
            line += f": {event.description}"
        return line
