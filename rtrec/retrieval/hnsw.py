"""
Hierarchical Navigable Small World (HNSW) approximate nearest-neighbor index
Squared Euclidean distance, results ordered nearest first
"""

import heapq
import itertools
from typing import Dict, Hashable, List, Optional, Sequence, Set, Tuple

import numpy as np
import structlog

from rtrec.retrieval.base import SearchResult, as_vector, squared_euclidean

logger = structlog.get_logger()

MAX_LEVEL = 16
LEVEL_PROBABILITY = 0.5


class HNSWIndex:
    """
    Multi-layer proximity graph.

    Every node is registered in layers 0..level, with level drawn by fair
    coin flips (P(level = k) = 2^-(k+1), capped at 16). Searches descend
    greedily from the first node of the topmost non-empty layer and finish
    with a best-first beam search on layer 0.

    With ``link_neighbors=True`` each insertion is connected to its
    ``max_connections`` nearest nodes per layer (``2 * max_connections`` on
    layer 0 after reverse-link pruning). With ``link_neighbors=False`` nodes
    get layer membership only and neighbor lists stay empty, so a search
    never leaves its entry point and returns at most one result.
    """

    def __init__(
        self,
        dimension: int,
        max_connections: int = 16,
        ef_construction: int = 200,
        ef_search: int = 50,
        link_neighbors: bool = True,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        if dimension <= 0:
            raise ValueError("Index dimension must be positive")
        if max_connections <= 0:
            raise ValueError("max_connections must be positive")

        self.dimension = dimension
        self.max_connections = max_connections
        self.ef_construction = max(ef_construction, max_connections)
        self.ef_search = ef_search
        self.link_neighbors = link_neighbors
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.layers: List[Dict[Hashable, List[Hashable]]] = [{}]
        # per layer: node -> nodes whose neighbor lists contain it
        self.backlinks: List[Dict[Hashable, Set[Hashable]]] = [{}]
        self.vectors: Dict[Hashable, np.ndarray] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self.vectors)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self.vectors

    def layer_sizes(self) -> List[int]:
        return [len(layer) for layer in self.layers]

    def get_vector(self, identifier: Hashable) -> Optional[np.ndarray]:
        vector = self.vectors.get(identifier)
        return None if vector is None else vector.copy()

    def _random_level(self) -> int:
        level = 0
        while self.rng.random() < LEVEL_PROBABILITY and level < MAX_LEVEL:
            level += 1
        return level

    def _node_level(self, identifier: Hashable) -> int:
        level = 0
        for layer_index, layer in enumerate(self.layers):
            if identifier in layer:
                level = layer_index
        return level

    def _entry_point(self, exclude: Optional[Hashable] = None) -> Optional[Tuple[Hashable, int]]:
        """First key of the topmost non-empty layer (not necessarily the best entry)"""
        for layer_index in range(len(self.layers) - 1, -1, -1):
            for identifier in self.layers[layer_index]:
                if identifier != exclude:
                    return identifier, layer_index
        return None

    def _search_layer(
        self,
        query: np.ndarray,
        entry_points: Sequence[Hashable],
        num_closest: int,
        layer: int,
    ) -> List[Tuple[float, Hashable]]:
        """Best-first beam search within one layer; returns (distance, id) nearest first"""
        visited = set()
        candidates = []
        results = []

        for entry in entry_points:
            if entry in visited or entry not in self.vectors:
                continue
            visited.add(entry)
            dist = squared_euclidean(query, self.vectors[entry])
            heapq.heappush(candidates, (dist, next(self._counter), entry))
            heapq.heappush(results, (-dist, next(self._counter), entry))
            if len(results) > num_closest:
                heapq.heappop(results)

        connections = self.layers[layer]
        while candidates:
            dist, _, current = heapq.heappop(candidates)
            if len(results) >= num_closest and dist > -results[0][0]:
                break

            for neighbor in connections.get(current, ()):
                if neighbor in visited:
                    continue
                visited.add(neighbor)

                neighbor_dist = squared_euclidean(query, self.vectors[neighbor])
                if len(results) < num_closest or neighbor_dist < -results[0][0]:
                    heapq.heappush(candidates, (neighbor_dist, next(self._counter), neighbor))
                    heapq.heappush(results, (-neighbor_dist, next(self._counter), neighbor))
                    if len(results) > num_closest:
                        heapq.heappop(results)

        return sorted(((-neg_dist, identifier) for neg_dist, _, identifier in results), key=lambda r: r[0])

    def _add_link(self, layer: int, source: Hashable, target: Hashable):
        self.layers[layer][source].append(target)
        self.backlinks[layer].setdefault(target, set()).add(source)

    def _prune(self, node: Hashable, layer: int, max_links: int):
        links = self.layers[layer][node]
        if len(links) <= max_links:
            return
        base = self.vectors[node]
        links.sort(key=lambda neighbor: squared_euclidean(base, self.vectors[neighbor]))
        for dropped in links[max_links:]:
            self.backlinks[layer][dropped].discard(node)
        del links[max_links:]

    def _link(self, identifier: Hashable, vector: np.ndarray, level: int):
        entry_point = self._entry_point(exclude=identifier)
        if entry_point is None:
            return

        entry, top = entry_point
        for layer in range(top, level, -1):
            entry = self._search_layer(vector, [entry], 1, layer)[0][1]

        for layer in range(min(level, top), -1, -1):
            nearest = [
                (dist, node)
                for dist, node in self._search_layer(vector, [entry], self.ef_construction, layer)
                if node != identifier
            ]
            if not nearest:
                continue

            max_links = self.max_connections * 2 if layer == 0 else self.max_connections
            for _, neighbor in nearest[: self.max_connections]:
                self._add_link(layer, identifier, neighbor)
                self._add_link(layer, neighbor, identifier)
                self._prune(neighbor, layer, max_links)

            entry = nearest[0][1]

    def _unlink(self, identifier: Hashable):
        """Drop every edge into and out of a node, leaving its layer membership"""
        for layer_index, layer in enumerate(self.layers):
            backlinks = self.backlinks[layer_index]
            for target in layer.get(identifier, ()):
                backlinks[target].discard(identifier)
            if identifier in layer:
                layer[identifier] = []

            for source in backlinks.pop(identifier, ()):
                layer[source].remove(identifier)

    def add_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        vec = as_vector(vector, self.dimension)
        if identifier in self.vectors:
            self.remove_vector(identifier)

        level = self._random_level()
        while len(self.layers) <= level:
            self.layers.append({})
            self.backlinks.append({})
            logger.debug(f"HNSW index grew to {len(self.layers)} layers")

        self.vectors[identifier] = vec
        for layer in range(level + 1):
            self.layers[layer][identifier] = []

        if self.link_neighbors:
            self._link(identifier, vec, level)

    def update_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        vec = as_vector(vector, self.dimension)
        if identifier not in self.vectors:
            self.add_vector(identifier, vec)
            return

        self.vectors[identifier] = vec
        if self.link_neighbors:
            self._unlink(identifier)
            self._link(identifier, vec, self._node_level(identifier))

    def remove_vector(self, identifier: Hashable) -> None:
        if identifier not in self.vectors:
            return

        self._unlink(identifier)
        for layer in self.layers:
            layer.pop(identifier, None)
        del self.vectors[identifier]

    def search_similar(self, query_vector: Sequence[float], top_k: int) -> SearchResult:
        query = as_vector(query_vector, self.dimension, "Query vector")
        if top_k <= 0:
            return []

        entry_point = self._entry_point()
        if entry_point is None:
            return []

        entry, top = entry_point
        for layer in range(top, 0, -1):
            entry = self._search_layer(query, [entry], 1, layer)[0][1]

        results = self._search_layer(query, [entry], max(top_k, self.ef_search), 0)
        return [(identifier, dist) for dist, identifier in results[:top_k]]
