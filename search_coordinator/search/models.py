"""
Result types shared by the coordinator, the merger and the search clients
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Hit:
    """
    One scored document.

    ``node_id`` and ``rank`` are attached by the coordinator, not by the
    engine: they record where the hit came from and its position in that
    node's own list, which the merger uses to break score ties.
    """
    score: float
    fields: Mapping[str, Any] = field(default_factory=dict)
    node_id: str = ""
    rank: int = 0

    @classmethod
    def from_raw(cls, raw: Any, node_id: str, rank: int) -> "Hit":
        """
        Normalize whatever a search client produced into a Hit

        Accepts a Hit, a ``{"score": .., "fields": {..}}`` mapping or a flat
        mapping where every key other than ``score`` is a field.
        """
        if isinstance(raw, Hit):
            return cls(score=raw.score, fields=raw.fields, node_id=node_id, rank=rank)
        if isinstance(raw, Mapping):
            score = float(raw.get("score", 0.0))
            if isinstance(raw.get("fields"), Mapping):
                fields = dict(raw["fields"])
            else:
                fields = {k: v for k, v in raw.items() if k not in ("score", "node_id", "rank")}
            return cls(score=score, fields=fields, node_id=node_id, rank=rank)
        raise TypeError(f"unsupported hit type from node {node_id}: {type(raw).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'fields': dict(self.fields),
            'node_id': self.node_id,
            'rank': self.rank,
        }


@dataclass(frozen=True)
class NodeResult:
    """What a search client returns for one successful call"""
    hits: Sequence[Any]
    total_hits: int
    took_ms: int = 0


@dataclass(frozen=True)
class NodeResponse:
    """Outcome of one node's participation in one search"""
    node_id: str
    total_hits: int = 0
    hits: Tuple[Hit, ...] = ()
    took_ms: int = 0
    error: Optional[str] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'node_id': self.node_id,
            'total_hits': self.total_hits,
            'hits': [h.to_dict() for h in self.hits],
            'took_ms': self.took_ms,
            'error': self.error,
            'attempts': self.attempts,
        }


@dataclass(frozen=True)
class AggregateResult:
    """The merged answer to one search call"""
    total_hits: int
    hits: List[Hit]
    took_ms: int
    node_responses: List[NodeResponse]
    errors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_hits': self.total_hits,
            'hits': [h.to_dict() for h in self.hits],
            'took_ms': self.took_ms,
            'node_responses': [r.to_dict() for r in self.node_responses],
            'errors': list(self.errors),
        }
