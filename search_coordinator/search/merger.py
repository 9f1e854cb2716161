"""
Result merging for distributed searches
"""
import logging
from typing import List, Sequence

from search_coordinator.core.config import MergeStrategy
from search_coordinator.search.models import AggregateResult, Hit, NodeResponse


class ResultMerger:
    """
    Combines per-node responses into one ordered, paginated answer.

    Output order never depends on the order in which nodes answered: the
    responses are expected in selection order, and score ties are broken by
    node id and then by the hit's rank within its node.
    """

    def __init__(self):
        self.logger = logging.getLogger("ResultMerger")

    def merge(
        self,
        responses: Sequence[NodeResponse],
        strategy: MergeStrategy,
        limit: int,
        offset: int = 0,
    ) -> AggregateResult:
        """
        Merge node responses

        Args:
            responses: One response per selected node, in selection order
            strategy: Merge strategy to apply
            limit: Maximum number of hits in the answer
            offset: Number of merged hits to skip

        Returns:
            AggregateResult; failed nodes contribute no hits and no total,
            but stay listed in ``node_responses`` and ``errors``
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be >= 0")

        strategy = MergeStrategy(strategy)
        successful = [r for r in responses if r.ok]

        if strategy == MergeStrategy.SCORE_DESC:
            ordered = sorted(self._concat(successful), key=lambda h: (-h.score, h.node_id, h.rank))
            hits = ordered[offset:offset + limit]
        elif strategy == MergeStrategy.SCORE_ASC:
            ordered = sorted(self._concat(successful), key=lambda h: (h.score, h.node_id, h.rank))
            hits = ordered[offset:offset + limit]
        elif strategy == MergeStrategy.NODE_ORDER:
            hits = self._concat(successful)[offset:offset + limit]
        elif strategy == MergeStrategy.ROUND_ROBIN:
            hits = self._interleave(successful, limit, offset)
        else:
            raise ValueError(f"unknown merge strategy: {strategy}")

        total_hits = sum(r.total_hits for r in successful)
        took_ms = max((r.took_ms for r in responses), default=0)
        errors = [f"{r.node_id}: {r.error}" for r in responses if not r.ok]

        self.logger.debug(
            f"Merged {len(successful)}/{len(responses)} responses with {strategy.value}: "
            f"{len(hits)} hits of {total_hits}"
        )

        return AggregateResult(
            total_hits=total_hits,
            hits=hits,
            took_ms=took_ms,
            node_responses=list(responses),
            errors=errors,
        )

    @staticmethod
    def _concat(responses: Sequence[NodeResponse]) -> List[Hit]:
        hits: List[Hit] = []
        for response in responses:
            hits.extend(response.hits)
        return hits

    @staticmethod
    def _interleave(responses: Sequence[NodeResponse], limit: int, offset: int) -> List[Hit]:
        """Take one hit per node per round, skipping exhausted lists"""
        lists = [r.hits for r in responses if r.hits]
        hits: List[Hit] = []
        position = 0
        depth = 0
        while lists and len(hits) < limit:
            remaining = []
            for node_hits in lists:
                if depth >= len(node_hits):
                    continue
                if position >= offset:
                    hits.append(node_hits[depth])
                    if len(hits) >= limit:
                        break
                position += 1
                if depth + 1 < len(node_hits):
                    remaining.append(node_hits)
            lists = remaining
            depth += 1
        return hits
