"""
RAG Engine

Public entry point of the retrieval layer. Composes the temporal parser,
the query classifier, the retrieval orchestrator, the circle gate and the
context assembler into five query modes:

- query: plain question over the user's own data
- query_with_history: same, with earlier conversation turns
- query_by_data_type: restricted to one data type
- query_by_activity: location records tagged with an activity
- query_circle_context: question over a circle's shared data

Pipeline (per query):
1. Validate input (before any external call)
2. Parse temporal intent, classify the query
3. Embed the query
4. Retrieve vectors (+ events when the query is temporal)
5. Assemble the bounded context with attributions
6. Generate the answer
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from ..common.config import RaceConfig, RetrieverConfig, TimeoutConfig
from ..common.errors import EmbeddingError, GenerationError, RaceError, ValidationError
from ..common.language import detect_language, language_instruction
from ..common.llm_client import DEFAULT_SYSTEM_PROMPT
from ..common.ports import (
    CirclePort,
    EmbeddingPort,
    EventStorePort,
    FriendPrivacyPort,
    GenerationPort,
    VectorIndexPort,
)
from ..common.schemas import ChatMessage, DataType, QueryResult
from ..common.vector_index import Filter
from .assembler import ContextAssembler
from .circle_gate import (
    CircleAccessGate,
    CircleContextLabeler,
    circle_empty_fallback,
    circle_header,
    circle_system_prompt,
)
from .orchestrator import CircleScope, RetrievalOrchestrator, UserScope, gather_or_cancel
from .query_classifier import QueryClassification, QueryIntentClassifier
from .temporal import TemporalIntent, TemporalIntentParser, TimezoneLike, resolve_timezone

logger = logging.getLogger("race.retriever.engine")

# Data types that can be queried on their own
QUERYABLE_DATA_TYPES = (DataType.HEALTH, DataType.LOCATION, DataType.VOICE, DataType.PHOTO)


def counting_preamble(label: str, count: int) -> str:
    """Instruction placed ahead of the context for counting questions."""
    return (
        f"IMPORTANT: This is a COUNTING query. Count the exact number of {label} in the context "
        f"below and provide the specific count in your answer.\n\n"
        f"Total {label} found: {count}\n\n"
    )


def _require(value: Optional[str], name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


class RAGEngine:
    """
    Retrieval-augmented answering over a user's personal data.

    All collaborators are injected; the engine holds no mutable state
    between queries and can serve concurrent requests.
    """

    def __init__(
        self,
        embedding: EmbeddingPort,
        vector_index: VectorIndexPort,
        generation: GenerationPort,
        event_store: Optional[EventStorePort] = None,
        circle_port: Optional[CirclePort] = None,
        friend_privacy: Optional[FriendPrivacyPort] = None,
        retriever_config: Optional[RetrieverConfig] = None,
        timeouts: Optional[TimeoutConfig] = None,
    ):
        """
        Args:
            embedding: Query embedding port
            vector_index: Semantic index port
            generation: Chat completion port
            event_store: Extracted-event port (temporal queries)
            circle_port: Circle and profile port; required for circle queries
            friend_privacy: Per-friend sharing source (defaults to circle_port if it provides one)
            retriever_config: TopK, context length, timezone and hint settings
            timeouts: Per-port timeouts in seconds
        """
        self._embedding = embedding
        self._generation = generation
        self._config = retriever_config or RetrieverConfig()
        self._timeouts = timeouts or TimeoutConfig()

        self._temporal = TemporalIntentParser(default_timezone=self._config.timezone)
        self._classifier = QueryIntentClassifier()
        self._assembler = ContextAssembler(tz=resolve_timezone(self._config.timezone))
        self._orchestrator = RetrievalOrchestrator(
            vector_index,
            event_store=event_store,
            timeouts=self._timeouts,
            event_limit=self._config.event_limit,
        )

        self._gate: Optional[CircleAccessGate] = None
        self._labeler: Optional[CircleContextLabeler] = None
        if circle_port is not None:
            self._gate = CircleAccessGate(circle_port, self._timeouts, friend_privacy=friend_privacy)
            self._labeler = CircleContextLabeler(circle_port, self._timeouts)

    @classmethod
    def from_config(
        cls,
        config: RaceConfig,
        vector_index: VectorIndexPort,
        event_store: Optional[EventStorePort] = None,
        circle_port: Optional[CirclePort] = None,
        friend_privacy: Optional[FriendPrivacyPort] = None,
    ) -> "RAGEngine":
        """Build an engine with the configured embedding and generation backends."""
        from ..common.embedding_service import EmbeddingService
        from ..common.llm_client import create_llm_client

        embedding = EmbeddingService(
            mode=config.embedding.mode,
            model=config.embedding.model,
            openai_api_key=config.embedding.openai_api_key or None,
        )
        return cls(
            embedding=embedding,
            vector_index=vector_index,
            generation=create_llm_client(config.llm),
            event_store=event_store,
            circle_port=circle_port,
            friend_privacy=friend_privacy,
            retriever_config=config.retriever,
            timeouts=config.timeouts,
        )

    # ------------------------------------------------------------------
    # Public query modes
    # ------------------------------------------------------------------

    async def query(
        self,
        user_id: str,
        message: str,
        *,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> QueryResult:
        """
        Answer a question from the user's own data.

        Args:
            user_id: Owner of the data
            message: The question
            now: Reference instant for relative dates (timezone-aware)
            tz: Reference timezone; defaults to the configured one

        Returns:
            QueryResult with the answer and the vector references used

        Raises:
            ValidationError, EmbeddingError, UpstreamRetrievalError, GenerationError
        """
        return await self._query_user(user_id, message, (), now=now, tz=tz, tag="rag_query")

    async def query_with_history(
        self,
        user_id: str,
        message: str,
        history: Sequence[ChatMessage],
        *,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> QueryResult:
        """Like query(), with earlier turns passed to the generation step."""
        return await self._query_user(
            user_id, message, history or (), now=now, tz=tz, tag="rag_query_history",
        )

    async def query_by_data_type(
        self,
        user_id: str,
        message: str,
        data_type: Union[str, DataType],
        *,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> QueryResult:
        """Answer from records of a single data type (health, location, voice or photo)."""
        allowed = {t.value for t in QUERYABLE_DATA_TYPES}
        type_value = data_type.value if isinstance(data_type, DataType) else data_type
        if type_value not in allowed:
            raise ValidationError(
                f"Unsupported data type {data_type!r}; expected one of {sorted(allowed)}"
            )

        return await self._query_user(
            user_id, message, (),
            now=now, tz=tz,
            tag=f"rag_query_datatype_{type_value}",
            base_filter={"type": {"$eq": type_value}},
            top_k=self._config.topk,
            use_hints=False,
            include_events=False,
        )

    async def query_by_activity(
        self,
        user_id: str,
        message: str,
        activity: str,
        *,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> QueryResult:
        """Answer from location records tagged with an activity (e.g. "badminton")."""
        activity = _require(activity, "activity").strip().lower()

        return await self._query_user(
            user_id, message, (),
            now=now, tz=tz,
            tag="rag_query_activity",
            base_filter={
                "$and": [
                    {"type": {"$eq": DataType.LOCATION.value}},
                    {"activity": {"$eq": activity}},
                ]
            },
            top_k=self._config.activity_topk,
            use_hints=False,
            include_events=False,
        )

    async def query_circle_context(
        self,
        circle_id: str,
        caller_id: str,
        message: str,
        *,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> QueryResult:
        """
        Answer a question over the data a circle's members share.

        The caller must be a member. Only data types enabled for the circle,
        and allowed by each owner's per-friend settings, reach the context;
        the caller's own items are always included.

        Raises:
            AuthorizationError: if the caller is not a member
            ValidationError, EmbeddingError, UpstreamRetrievalError, GenerationError
        """
        _require(circle_id, "circle_id")
        _require(caller_id, "caller_id")
        _require(message, "message")
        if self._gate is None or self._labeler is None:
            raise RaceError("Circle queries need a circle port")
        top_k = self._check_top_k(self._config.circle_topk)

        zone = resolve_timezone(tz if tz is not None else self._config.timezone)
        intent, now = self._parse_intent(message, now, zone)

        started = time.monotonic()
        logger.info("Circle query from %s in circle %s", caller_id, circle_id)

        circle = await self._gate.authorize(circle_id, caller_id)
        type_filter = self._gate.build_filter(circle.data_sharing)
        logger.debug("Circle %s allows types: %s", circle_id, list(type_filter.allowed_types) or "none")

        embedding, (friend_settings, friend_error) = await gather_or_cancel(
            self._embed(message, caller_id, "rag_circle_query_embedding"),
            self._gate.load_friend_settings(caller_id, circle),
        )

        retrieval = await self._orchestrator.retrieve(
            CircleScope(circle_id=circle.id, caller_id=caller_id, member_ids=tuple(circle.member_ids)),
            embedding,
            intent,
            top_k,
            type_filter=type_filter.to_query_filter(),
            tag="rag_circle_query_vector",
        )

        visible = self._gate.filter_results(
            retrieval.vectors, caller_id, circle.data_sharing, friend_settings,
        )
        label_fn, label_error = await self._labeler.resolve(
            [v.metadata.user_id for v in visible], caller_id,
        )

        assembled = self._assembler.assemble(
            visible,
            [],
            self._config.max_context_length,
            label_fn=label_fn,
            header=circle_header(circle, len(visible)),
            empty_fallback=circle_empty_fallback(circle),
            tz=zone,
        )

        response = await self._generate(
            [],
            message,
            assembled.context,
            system_prompt=circle_system_prompt(circle),
            user_id=caller_id,
            endpoint="rag_circle_chat_completion",
            now=now,
        )

        degraded = retrieval.degraded_sources + [
            err.source for err in (friend_error, label_error) if err is not None
        ]
        logger.info(
            "Circle query complete: %d references in %.1fms%s",
            len(assembled.references),
            (time.monotonic() - started) * 1000,
            f" (degraded: {', '.join(degraded)})" if degraded else "",
        )
        return QueryResult(
            response=response,
            context_used=assembled.references,
            degraded_sources=degraded,
            temporal_label=intent.label,
        )

    # ------------------------------------------------------------------
    # Shared pipeline
    # ------------------------------------------------------------------

    async def _query_user(
        self,
        user_id: str,
        message: str,
        history: Sequence[ChatMessage],
        *,
        now: Optional[datetime],
        tz: Optional[TimezoneLike],
        tag: str,
        base_filter: Optional[Filter] = None,
        top_k: Optional[int] = None,
        use_hints: bool = True,
        include_events: bool = True,
    ) -> QueryResult:
        _require(user_id, "user_id")
        _require(message, "message")

        zone = resolve_timezone(tz if tz is not None else self._config.timezone)
        intent, now = self._parse_intent(message, now, zone)

        hints: Optional[QueryClassification] = None
        if use_hints and self._config.use_query_hints:
            hints = self._classifier.classify(message)
            logger.debug(
                "Query hints: count=%s type=%s activity=%s",
                hints.is_count_query, hints.suggested_data_type, hints.suggested_activity,
            )

        if top_k is None:
            top_k = self._config.count_topk if hints and hints.is_count_query else self._config.topk
        top_k = self._check_top_k(top_k)

        started = time.monotonic()
        logger.info("Query from user %s (%s, topK=%d)", user_id, tag, top_k)

        embedding = await self._embed(message, user_id, f"{tag}_embedding")
        retrieval = await self._orchestrator.retrieve(
            UserScope(user_id),
            embedding,
            intent,
            top_k,
            base_filter=base_filter,
            tag=f"{tag}_vector",
            include_events=include_events,
        )

        preamble = None
        if hints and hints.is_count_query and retrieval.vectors:
            label = hints.suggested_data_type.value if hints.suggested_data_type else "items"
            preamble = counting_preamble(label, len(retrieval.vectors))

        assembled = self._assembler.assemble(
            retrieval.vectors,
            retrieval.events,
            self._config.max_context_length,
            preamble=preamble,
            tz=zone,
        )
        logger.debug(
            "Context built: %d chars, %d vectors, %d events",
            len(assembled.context), len(retrieval.vectors), len(retrieval.events),
        )

        response = await self._generate(
            history,
            message,
            assembled.context,
            system_prompt=None,
            user_id=user_id,
            endpoint=f"{tag}_completion",
            now=now,
        )

        logger.info(
            "Query complete: %d references in %.1fms%s%s",
            len(assembled.references),
            (time.monotonic() - started) * 1000,
            f" (temporal: {intent.label})" if intent.has_intent else "",
            f" (degraded: {', '.join(retrieval.degraded_sources)})" if retrieval.degraded else "",
        )
        return QueryResult(
            response=response,
            context_used=assembled.references,
            degraded_sources=retrieval.degraded_sources,
            temporal_label=intent.label,
        )

    def _parse_intent(self, message: str, now: Optional[datetime], zone) -> Tuple[TemporalIntent, datetime]:
        if now is None:
            now = datetime.now(zone)
        intent = self._temporal.parse(message, now=now, tz=zone)
        if intent.has_intent:
            logger.info(
                "Temporal intent '%s': %s to %s",
                intent.label, intent.date_range.start.isoformat(), intent.date_range.end.isoformat(),
            )
        return intent, now

    @staticmethod
    def _check_top_k(top_k: int) -> int:
        if top_k < 1:
            raise ValidationError(f"top_k must be at least 1, got {top_k}")
        return top_k

    async def _embed(self, text: str, user_id: str, tag: str) -> List[float]:
        started = time.monotonic()
        try:
            vector = await asyncio.wait_for(
                self._embedding.embed(text, user_id, tag),
                timeout=self._timeouts.embedding,
            )
        except asyncio.TimeoutError as e:
            logger.error("Embedding timed out after %ss", self._timeouts.embedding)
            raise EmbeddingError("Embedding generation timed out") from e
        except RaceError:
            raise
        except Exception as e:
            logger.error("Embedding failed: %s", e, exc_info=True)
            raise EmbeddingError(f"Embedding generation failed: {e}") from e

        if not vector:
            raise EmbeddingError("Embedding port returned an empty vector")

        logger.debug("Embedding generated in %.1fms (dim=%d)", (time.monotonic() - started) * 1000, len(vector))
        return list(vector)

    async def _generate(
        self,
        history: Sequence[ChatMessage],
        message: str,
        context: str,
        *,
        system_prompt: Optional[str],
        user_id: str,
        endpoint: str,
        now: datetime,
    ) -> str:
        instruction = language_instruction(detect_language(message))
        if instruction:
            system_prompt = f"{system_prompt or DEFAULT_SYSTEM_PROMPT}\n\n{instruction}"

        messages = [
            *history,
            ChatMessage(role="user", content=message, timestamp=now.isoformat()),
        ]

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._generation.complete(
                    messages,
                    context,
                    system_prompt,
                    user_id=user_id,
                    endpoint=endpoint,
                ),
                timeout=self._timeouts.generation,
            )
        except asyncio.TimeoutError as e:
            logger.error("Generation timed out after %ss", self._timeouts.generation)
            raise GenerationError("Generation timed out") from e
        except RaceError:
            raise
        except Exception as e:
            logger.error("Generation failed: %s", e, exc_info=True)
            raise GenerationError(f"Generation failed: {e}") from e

        logger.debug("Generation finished in %.1fms", (time.monotonic() - started) * 1000)
        return response
