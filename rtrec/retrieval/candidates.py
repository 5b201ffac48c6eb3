"""
Candidate generation on the read path
Index recall followed by model rescoring
"""

import time
from typing import Dict, Hashable, Iterable, List, Optional

import structlog

from rtrec.models.collaborative import RecommendationAlgorithm
from rtrec.retrieval.service import VectorIndexService

logger = structlog.get_logger()


class CandidateGenerator:
    """Ranked item candidates for a user from the current embeddings"""

    def __init__(
        self,
        model: RecommendationAlgorithm,
        index_service: VectorIndexService,
        min_score: Optional[float] = None,
        oversampling: int = 2,
    ):
        self.model = model
        self.index_service = index_service
        self.min_score = min_score
        self.oversampling = max(1, oversampling)

    async def candidates_for_user(
        self,
        user_id: Hashable,
        num_candidates: int,
        exclude_items: Optional[Iterable[Hashable]] = None,
    ) -> List[Dict]:
        start_time = time.time()
        excluded = set(exclude_items or ())

        user_embedding = await self.model.get_user_embedding(user_id)
        recalled = await self.index_service.search_similar_items(
            user_embedding, num_candidates * self.oversampling
        )

        candidates = []
        for item_id, index_score in recalled:
            if item_id in excluded:
                continue

            item_vector = await self.index_service.items.get_vector(item_id)
            # removed between recall and rescoring
            if item_vector is None:
                continue

            score = self.model.predict(user_embedding, item_vector)
            if self.min_score is not None and score < self.min_score:
                continue

            candidates.append({"item_id": item_id, "score": score, "index_score": index_score})

        candidates.sort(key=lambda candidate: candidate["score"], reverse=True)

        logger.debug(
            f"Generated {min(len(candidates), num_candidates)} candidates",
            user_id=str(user_id),
            recalled=len(recalled),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return candidates[:num_candidates]
