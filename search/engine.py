"""
Hybrid issue search.
Runs the store's full-text search first and, when it returns too few hits, fills up with
issues whose title, body or comment text is within a small edit distance of the query.
"""
import logging
from typing import List, Optional
from rapidfuzz.distance import Levenshtein
from errors import InvalidQuery
from normalize.models import Issue
from storage.store import IssueStore

logger = logging.getLogger(__name__)

MAX_RESULTS = 50
FUZZY_THRESHOLD = 10  # run the approximate pass below this many exact hits
FUZZY_POOL_SIZE = 1000
FUZZY_MAX_DISTANCE = 3
FUZZY_MAX_RESULTS = 10


class SearchHit:
    def __init__(self, issue: Issue, match: str, score: float):
        self.issue = issue
        self.match = match  # 'exact' or 'approximate'
        self.score = score  # relevance for exact hits, edit distance for approximate ones

    def to_dict(self):
        d = self.issue.to_dict()
        d['match'] = self.match
        d['score'] = self.score
        return d


def min_edit_distance(query: str, issue: Issue, max_distance: int = FUZZY_MAX_DISTANCE) -> int:
    """Smallest Levenshtein distance between the query and the title, body or joined comment bodies.
    Distances above max_distance are reported as max_distance + 1.
    """
    comments_text = ' '.join(c.body for c in issue.comments_detail)
    return min(Levenshtein.distance(query, field, score_cutoff=max_distance) for field in (issue.title or '', issue.body or '', comments_text))


class HybridSearchEngine:
    def __init__(self, store: IssueStore, max_results: int = MAX_RESULTS, fuzzy_threshold: int = FUZZY_THRESHOLD, fuzzy_pool_size: int = FUZZY_POOL_SIZE, max_distance: int = FUZZY_MAX_DISTANCE, fuzzy_max_results: int = FUZZY_MAX_RESULTS):
        self.store = store
        self.max_results = max_results
        self.fuzzy_threshold = fuzzy_threshold
        self.fuzzy_pool_size = fuzzy_pool_size
        self.max_distance = max_distance
        self.fuzzy_max_results = fuzzy_max_results

    def _exact(self, query: str) -> List[SearchHit]:
        return [SearchHit(issue, 'exact', score) for issue, score in self.store.full_text_search(query, limit=self.max_results)]

    def _approximate(self, query: str) -> List[SearchHit]:
        candidates = []
        for issue in self.store.recent(limit=self.fuzzy_pool_size):
            distance = min_edit_distance(query, issue, self.max_distance)
            if distance <= self.max_distance:
                candidates.append(SearchHit(issue, 'approximate', distance))
        # sorted() is stable: equal distances keep retrieval order
        candidates = sorted(candidates, key=lambda h: h.score)
        return candidates[:self.fuzzy_max_results]

    def search_with_details(self, query: Optional[str]) -> List[SearchHit]:
        if query is None or not str(query).strip():
            raise InvalidQuery("Missing query parameter: q")
        hits = self._exact(query)
        if len(hits) < self.fuzzy_threshold:
            fuzzy = self._approximate(query)
            seen = {(h.issue.repo, h.issue.number) for h in hits}
            added = [h for h in fuzzy if (h.issue.repo, h.issue.number) not in seen]
            logger.debug("Exact search returned %d hits for %r; added %d approximate hits", len(hits), query, len(added))
            hits = hits + added
        return hits[:self.max_results]

    def search(self, query: Optional[str]) -> List[Issue]:
        """Exact hits by relevance, then approximate hits by edit distance; at most max_results issues."""
        return [h.issue for h in self.search_with_details(query)]


__all__ = ["HybridSearchEngine", "SearchHit", "min_edit_distance"]
