"""
Retrieval Orchestrator

Fans a query embedding out to the vector index and, when the query carries
temporal intent, to the event store. The two calls run concurrently; when
one fails fatally the other is cancelled.

Failure policy:
- Vector index failure or timeout is fatal (UpstreamRetrievalError)
- Event store failure or timeout degrades to no events (PartialDataError,
  logged and recorded, never raised)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from ..common.config import TimeoutConfig
from ..common.errors import PartialDataError, RaceError, UpstreamRetrievalError, ValidationError
from ..common.ports import EventStorePort, VectorIndexPort
from ..common.schemas import ExtractedEvent, VectorMatch
from ..common.vector_index import Filter, combine_filters, date_range_filter
from .temporal import TemporalIntent

logger = logging.getLogger("race.retriever.orchestrator")


async def gather_or_cancel(*aws):
    """
    Like asyncio.gather, but a failure cancels the calls still in flight.

    The remaining calls are awaited after cancellation so none outlives the
    request that started it.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass(frozen=True)
class UserScope:
    """Single-user retrieval"""
    user_id: str

    @property
    def scope_ids(self) -> List[str]:
        return [self.user_id]


@dataclass(frozen=True)
class CircleScope:
    """Retrieval across the members of a circle"""
    circle_id: str
    caller_id: str
    member_ids: Sequence[str]

    @property
    def scope_ids(self) -> List[str]:
        return list(self.member_ids)


Scope = Union[UserScope, CircleScope]


@dataclass
class RetrievalResult:
    """Raw retrieval output before assembly"""
    vectors: List[VectorMatch] = field(default_factory=list)
    events: List[ExtractedEvent] = field(default_factory=list)
    degraded: List[PartialDataError] = field(default_factory=list)

    @property
    def degraded_sources(self) -> List[str]:
        return [err.source for err in self.degraded]


class RetrievalOrchestrator:
    """
    Issues the vector-index query (always) and the event-store query (only
    with temporal intent, only for a single user) and merges the results.
    """

    def __init__(
        self,
        vector_index: VectorIndexPort,
        event_store: Optional[EventStorePort] = None,
        timeouts: Optional[TimeoutConfig] = None,
        event_limit: int = 50,
    ):
        """
        Args:
            vector_index: Semantic index port
            event_store: Extracted-event port; without one, events are never fetched
            timeouts: Per-port timeouts in seconds
            event_limit: Maximum events requested per query
        """
        self._vector_index = vector_index
        self._event_store = event_store
        self._timeouts = timeouts or TimeoutConfig()
        self._event_limit = event_limit

    async def retrieve(
        self,
        scope: Scope,
        embedding: Sequence[float],
        intent: TemporalIntent,
        top_k: int,
        type_filter: Optional[Filter] = None,
        base_filter: Optional[Filter] = None,
        tag: str = "",
        include_events: bool = True,
    ) -> RetrievalResult:
        """
        Retrieve vectors and events for a query.

        Args:
            scope: UserScope or CircleScope
            embedding: Query embedding
            intent: Temporal intent of the query
            top_k: Maximum vector matches
            type_filter: Data-type restriction (circle sharing)
            base_filter: Additional metadata filter (data type / activity modes)
            tag: Caller tag passed to the ports for usage accounting
            include_events: Set False to skip the event store even with temporal intent

        Returns:
            RetrievalResult; `degraded` lists the recoverable failures

        Raises:
            ValidationError: if top_k < 1 or the scope is empty
            UpstreamRetrievalError: if the vector index fails or times out
        """
        if top_k < 1:
            raise ValidationError(f"top_k must be at least 1, got {top_k}")
        if not scope.scope_ids:
            raise ValidationError("Retrieval scope has no users")

        temporal_filter = None
        if intent.has_intent and intent.date_range is not None:
            temporal_filter = date_range_filter(intent.date_range.start, intent.date_range.end)

        query_filter = combine_filters(base_filter, type_filter, temporal_filter)

        fetch_events = (
            include_events
            and intent.has_intent
            and intent.date_range is not None
            and isinstance(scope, UserScope)
            and self._event_store is not None
        )

        started = time.monotonic()
        vector_call = self._query_vectors(scope, embedding, top_k, query_filter, tag)
        if fetch_events:
            vectors, (events, event_error) = await gather_or_cancel(
                vector_call,
                self._query_events(scope.user_id, intent),
            )
        else:
            vectors, events, event_error = await vector_call, [], None

        result = RetrievalResult(vectors=list(vectors), events=list(events))
        if event_error is not None:
            logger.warning("Continuing without events: %s", event_error)
            result.degraded.append(event_error)

        logger.info(
            "Retrieved %d vectors, %d events in %.1fms (%s)",
            len(result.vectors), len(result.events), (time.monotonic() - started) * 1000, tag,
        )
        return result

    async def _query_vectors(
        self,
        scope: Scope,
        embedding: Sequence[float],
        top_k: int,
        query_filter: Optional[Filter],
        tag: str,
    ) -> List[VectorMatch]:
        try:
            return await asyncio.wait_for(
                self._vector_index.query(embedding, scope.scope_ids, top_k, filter=query_filter, tag=tag),
                timeout=self._timeouts.vector_index,
            )
        except asyncio.TimeoutError as e:
            logger.error("Vector index query timed out after %ss", self._timeouts.vector_index)
            raise UpstreamRetrievalError("Vector index query timed out") from e
        except RaceError:
            raise
        except Exception as e:
            logger.error("Vector index query failed: %s", e, exc_info=True)
            raise UpstreamRetrievalError(f"Vector index query failed: {e}") from e

    async def _query_events(
        self, user_id: str, intent: TemporalIntent
    ) -> Tuple[List[ExtractedEvent], Optional[PartialDataError]]:
        """Event lookup; failures come back as a PartialDataError instead of raising."""
        try:
            events = await asyncio.wait_for(
                self._event_store.get_events(
                    user_id,
                    start=intent.date_range.start,
                    end=intent.date_range.end,
                    limit=self._event_limit,
                ),
                timeout=self._timeouts.event_store,
            )
        except asyncio.TimeoutError as e:
            return [], PartialDataError("event_store", "event store query timed out", e)
        except Exception as e:
            return [], PartialDataError("event_store", str(e), e)
        return list(events or []), None
