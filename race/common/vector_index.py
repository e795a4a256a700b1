"""
Vector Index Helpers

Builders for the metadata filter dialect understood by the vector index
($eq / $ne / $in / $nin / $gt / $gte / $lt / $lte / $and / $or), an evaluator
for that dialect, and an in-memory index that implements the vector index port.

The in-memory index is the reference the filter semantics are tested against
and a drop-in for local development; production deployments inject a client
for a hosted index instead.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .schemas import DATE_FIELDS, VectorMatch, VectorMetadata

logger = logging.getLogger("race.common.vector_index")

Filter = Dict[str, Any]


# ============================================================================
# Filter builders
# ============================================================================

def to_iso_millis(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def scope_filter(user_ids: Sequence[str]) -> Filter:
    """Restrict matches to records owned by the given users"""
    ids = list(user_ids)
    if len(ids) == 1:
        return {"userId": {"$eq": ids[0]}}
    return {"userId": {"$in": ids}}


def date_range_filter(start: datetime, end: datetime) -> Filter:
    """
    OR across every known date field, each bounded by [start, end].

    Records are not guaranteed to share one timestamp field name.
    """
    bounds = {"$gte": to_iso_millis(start), "$lte": to_iso_millis(end)}
    return {"$or": [{name: dict(bounds)} for name in DATE_FIELDS]}


def combine_filters(*filters: Optional[Filter]) -> Optional[Filter]:
    """AND together the non-empty filters"""
    present = [f for f in filters if f]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return {"$and": present}


# ============================================================================
# Filter evaluation
# ============================================================================

def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _comparable(left: Any, right: Any):
    """Coerce a pair of values so they order sensibly (datetimes, numbers, strings)."""
    left_dt, right_dt = _parse_datetime(left), _parse_datetime(right)
    if right_dt is not None and isinstance(left, (int, float)) and not isinstance(left, bool):
        # Numeric dates are epoch milliseconds
        left_dt = datetime.fromtimestamp(left / 1000, tz=timezone.utc)
    if left_dt is not None and right_dt is not None:
        return left_dt, right_dt
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left, right
    return str(left), str(right)


def _match_condition(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict):
        return value == condition

    for op, operand in condition.items():
        if op == "$eq":
            ok = value == operand
        elif op == "$ne":
            ok = value != operand
        elif op == "$in":
            ok = value in operand
        elif op == "$nin":
            ok = value not in operand
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            if value is None:
                return False
            left, right = _comparable(value, operand)
            ok = {
                "$gt": left > right,
                "$gte": left >= right,
                "$lt": left < right,
                "$lte": left <= right,
            }[op]
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
        if not ok:
            return False
    return True


def matches_filter(metadata: Dict[str, Any], filter: Optional[Filter]) -> bool:
    """Evaluate a metadata filter against a metadata dict"""
    if not filter:
        return True

    for key, condition in filter.items():
        if key == "$and":
            if not all(matches_filter(metadata, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches_filter(metadata, sub) for sub in condition):
                return False
        elif not _match_condition(metadata.get(key), condition):
            return False
    return True


# ============================================================================
# In-memory index
# ============================================================================

class InMemoryVectorIndex:
    """
    Brute-force cosine similarity index over (vector, metadata) pairs.

    Scores are clamped to [0, 1].
    """

    def __init__(self):
        self._ids: List[str] = []
        self._vectors: List[np.ndarray] = []
        self._metadata: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, record_id: str, vector: Sequence[float], metadata: Dict[str, Any]) -> None:
        """Insert or replace a record. `metadata["userId"]` scopes it to an owner."""
        arr = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(arr)
        if norm > 0:
            arr = arr / norm

        if record_id in self._ids:
            idx = self._ids.index(record_id)
            self._vectors[idx] = arr
            self._metadata[idx] = dict(metadata)
            return

        self._ids.append(record_id)
        self._vectors.append(arr)
        self._metadata.append(dict(metadata))

    async def query(
        self,
        vector: Sequence[float],
        scope_ids: Sequence[str],
        top_k: int,
        filter: Optional[Filter] = None,
        tag: str = "",
    ) -> List[VectorMatch]:
        """Return the top_k most similar records owned by scope_ids that pass filter."""
        if not self._ids:
            return []

        query_filter = combine_filters(scope_filter(scope_ids), filter)
        candidates = [
            i for i, meta in enumerate(self._metadata)
            if matches_filter(meta, query_filter)
        ]
        if not candidates:
            return []

        query_vec = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(query_vec)
        if norm > 0:
            query_vec = query_vec / norm

        matrix = np.stack([self._vectors[i] for i in candidates])
        scores = np.clip(matrix @ query_vec, 0.0, 1.0)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:top_k]
        logger.debug("In-memory query (%s): %d candidates, returning %d", tag, len(candidates), len(order))

        return [
            VectorMatch(
                id=self._ids[candidates[i]],
                score=float(scores[i]),
                metadata=VectorMetadata.model_validate(self._metadata[candidates[i]]),
            )
            for i in order
        ]
