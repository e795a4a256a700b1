"""
Circle Access Gate

Everything that keeps a circle query inside what its members agreed to share:

- Membership check before any retrieval (fail closed: raises, never returns empty)
- Circle sharing flags -> vector `type` filter (all flags off matches nothing)
- Post-retrieval intersection with each owner's per-friend settings
- Attribution labels for the members whose items made it into the context
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..common.config import TimeoutConfig
from ..common.errors import (
    AuthorizationError,
    PartialDataError,
    RaceError,
    UpstreamRetrievalError,
    ValidationError,
)
from ..common.ports import CirclePort, FriendPrivacyPort
from ..common.schemas import Circle, DataSharing, VectorMatch
from ..common.vector_index import Filter
from .assembler import LabelFn

logger = logging.getLogger("race.retriever.circle_gate")

# Type tag no record carries; filters on it match nothing
NO_MATCH_TYPE = "__none__"

CALLER_LABEL = "You"
MEMBER_FALLBACK_LABEL = "Circle Member"


def circle_system_prompt(circle: Circle) -> str:
    return (
        f'You are analyzing data for a friend circle called "{circle.name}" '
        f"with {len(circle.member_ids)} members.\n"
        "When referencing data, mention which member it's from by name.\n"
        "Be conversational and friendly - this is a private circle of close friends.\n"
        "Respect the data sharing settings - only data types enabled for this circle are included."
    )


def circle_header(circle: Circle, item_count: int) -> str:
    return f'Circle "{circle.name}" Data ({len(circle.member_ids)} members, {item_count} items):'


def circle_empty_fallback(circle: Circle) -> str:
    return (
        f'No relevant data found in circle "{circle.name}". '
        "Circle members may not have this type of data, or it may not be shared."
    )


@dataclass(frozen=True)
class DataTypeFilter:
    """Set of vector type tags a circle query may return"""
    allowed_types: Tuple[str, ...] = ()

    @classmethod
    def from_sharing(cls, sharing: DataSharing) -> "DataTypeFilter":
        return cls(allowed_types=tuple(sharing.allowed_types))

    @property
    def matches_nothing(self) -> bool:
        return not self.allowed_types

    def to_query_filter(self) -> Filter:
        """Vector index filter. Never empty: no allowed type becomes an impossible match."""
        if self.matches_nothing:
            return {"type": {"$eq": NO_MATCH_TYPE}}
        return {"type": {"$in": list(self.allowed_types)}}

    def matches(self, data_type: Optional[str]) -> bool:
        return data_type in self.allowed_types


class CircleAccessGate:
    """
    Authorizes circle queries and enforces sharing on their results.

    Per-friend settings come from `friend_privacy`, or from the circle port
    itself when it also implements FriendPrivacyPort. Without either, only
    the circle's own flags apply.
    """

    def __init__(
        self,
        circle_port: CirclePort,
        timeouts: Optional[TimeoutConfig] = None,
        friend_privacy: Optional[FriendPrivacyPort] = None,
    ):
        self._circles = circle_port
        self._timeouts = timeouts or TimeoutConfig()
        if friend_privacy is None and isinstance(circle_port, FriendPrivacyPort):
            friend_privacy = circle_port
        self._friend_privacy = friend_privacy

    async def authorize(self, circle_id: str, caller_id: str) -> Circle:
        """
        Load a circle and confirm the caller belongs to it.

        Raises:
            ValidationError: on empty ids
            AuthorizationError: if the circle is missing or the caller is not a member
            UpstreamRetrievalError: if the circle lookup fails or times out
        """
        if not circle_id:
            raise ValidationError("circle_id is required")
        if not caller_id:
            raise ValidationError("caller_id is required")

        try:
            circle = await asyncio.wait_for(
                self._circles.get_circle(circle_id),
                timeout=self._timeouts.circle_lookup,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamRetrievalError(f"Circle lookup timed out for {circle_id}") from e
        except RaceError:
            raise
        except Exception as e:
            logger.error("Circle lookup failed for %s: %s", circle_id, e, exc_info=True)
            raise UpstreamRetrievalError(f"Circle lookup failed for {circle_id}: {e}") from e

        if circle is None or not circle.has_member(caller_id):
            logger.warning("Rejected circle query: user %s is not a member of %s", caller_id, circle_id)
            raise AuthorizationError(circle_id, caller_id)

        return circle

    @staticmethod
    def build_filter(sharing: DataSharing) -> DataTypeFilter:
        return DataTypeFilter.from_sharing(sharing)

    async def load_friend_settings(
        self,
        caller_id: str,
        circle: Circle,
    ) -> Tuple[Optional[Dict[str, DataSharing]], Optional[PartialDataError]]:
        """
        Fetch each other member's per-friend sharing toward the caller.

        Returns:
            (settings, error). settings is None when no per-friend source is
            configured. On failure settings is empty, so every other member
            falls back to sharing nothing.
        """
        if self._friend_privacy is None:
            return None, None

        friend_ids = [m for m in circle.member_ids if m != caller_id]
        if not friend_ids:
            return {}, None

        try:
            settings = await asyncio.wait_for(
                self._friend_privacy.get_privacy_settings_for_friends(caller_id, friend_ids),
                timeout=self._timeouts.profile_lookup,
            )
        except asyncio.TimeoutError as e:
            error = PartialDataError("friend_privacy", "per-friend settings lookup timed out", e)
        except Exception as e:
            error = PartialDataError("friend_privacy", str(e), e)
        else:
            logger.debug("Fetched per-friend settings for %d of %d members", len(settings), len(friend_ids))
            return dict(settings), None

        logger.warning("Per-friend settings unavailable, sharing restricted to caller's own data: %s", error)
        return {}, error

    @staticmethod
    def filter_results(
        vectors: Sequence[VectorMatch],
        caller_id: str,
        circle_sharing: DataSharing,
        friend_settings: Optional[Dict[str, DataSharing]],
    ) -> List[VectorMatch]:
        """
        Keep the items each owner effectively shares with the circle.

        The caller's own items need only the circle flag. For other members,
        effective sharing is the circle flag AND the owner's per-friend flag;
        an owner without per-friend settings shares nothing. Unknown types are
        never shared.
        """
        kept = []
        for vector in vectors:
            owner = vector.metadata.user_id
            effective = circle_sharing
            if owner != caller_id and friend_settings is not None:
                effective = circle_sharing.intersect(friend_settings.get(owner) or DataSharing())

            if effective.allows(vector.metadata.type):
                kept.append(vector)

        if len(kept) < len(vectors):
            logger.info("Sharing filter removed %d of %d items", len(vectors) - len(kept), len(vectors))
        return kept


class CircleContextLabeler:
    """Resolves item owners to display names for circle context attribution."""

    def __init__(self, circle_port: CirclePort, timeouts: Optional[TimeoutConfig] = None):
        self._circles = circle_port
        self._timeouts = timeouts or TimeoutConfig()

    async def resolve(
        self,
        user_ids: Sequence[Optional[str]],
        caller_id: str,
    ) -> Tuple[LabelFn, Optional[PartialDataError]]:
        """
        Look up display names for the given owners concurrently.

        The caller is always labelled "You" and is never looked up. Owners
        whose lookup fails, times out or has no display name get the
        generic member label.

        Returns:
            (label_fn, error); error summarises failed lookups, if any
        """
        others = list(dict.fromkeys(u for u in user_ids if u and u != caller_id))

        outcomes = await asyncio.gather(
            *(self._lookup(uid) for uid in others),
            return_exceptions=True,
        )

        names: Dict[str, str] = {}
        failed: List[str] = []
        for uid, outcome in zip(others, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failed.append(uid)
                logger.warning("Profile lookup failed for %s: %s", uid, outcome)
                continue
            if outcome is not None and outcome.display_name:
                names[uid] = outcome.display_name

        error = None
        if failed:
            error = PartialDataError("profile_lookup", f"{len(failed)} of {len(others)} profile lookups failed")

        def label(user_id: Optional[str]) -> str:
            if user_id == caller_id:
                return CALLER_LABEL
            return names.get(user_id, MEMBER_FALLBACK_LABEL)

        return label, error

    async def _lookup(self, user_id: str):
        return await asyncio.wait_for(
            self._circles.get_user_profile(user_id),
            timeout=self._timeouts.profile_lookup,
        )
