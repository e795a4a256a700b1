"""
External ports consumed by the engine.

Implementations are constructor-injected into the orchestrator and facade,
so tests can substitute fakes and no module holds hidden global clients.
All operations are async; the engine applies its own timeouts around them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .schemas import ChatMessage, Circle, DataSharing, ExtractedEvent, UserProfile, VectorMatch


@runtime_checkable
class EmbeddingPort(Protocol):
    async def embed(self, text: str, user_id: str, tag: str) -> List[float]:
        ...


@runtime_checkable
class VectorIndexPort(Protocol):
    async def query(
        self,
        vector: Sequence[float],
        scope_ids: Sequence[str],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        tag: str = "",
    ) -> List[VectorMatch]:
        """`scope_ids` is one id (user) or several (circle); `filter` is opaque here."""
        ...


@runtime_checkable
class EventStorePort(Protocol):
    async def get_events(
        self,
        user_id: str,
        *,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> List[ExtractedEvent]:
        ...


@runtime_checkable
class CirclePort(Protocol):
    async def get_circle(self, circle_id: str) -> Circle:
        ...

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        ...


@runtime_checkable
class FriendPrivacyPort(Protocol):
    """Optional extension of CirclePort for per-friend sharing limits."""

    async def get_privacy_settings_for_friends(
        self,
        user_id: str,
        friend_ids: Sequence[str],
    ) -> Dict[str, DataSharing]:
        ...


@runtime_checkable
class GenerationPort(Protocol):
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        context: str,
        system_prompt: Optional[str] = None,
        *,
        user_id: str = "",
        endpoint: str = "",
    ) -> str:
        """Consumes the assembled context verbatim."""
        ...
