"""
Web search orchestrator: DuckDuckGo text search with a small TTL cache.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from duckduckgo_search import DDGS

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5
DEFAULT_CACHE_TTL = 300.0
SNIPPET_CHARS = 400


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str
    source: str = "duckduckgo"


def _ddgs_text(query: str, max_results: int) -> List[Dict[str, Any]]:
    with DDGS() as ddgs:
        return list(ddgs.text(query, max_results=max_results))


class WebSearchOrchestrator:
    """Searches the web and normalizes results. Cache entries expire after ttl seconds."""

    def __init__(
        self,
        max_results: int = DEFAULT_MAX_RESULTS,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        search_fn: Optional[Callable[[str, int], List[Dict[str, Any]]]] = None,
    ):
        self.max_results = max(1, min(10, max_results))
        self.cache_ttl = cache_ttl
        self._search_fn = search_fn or _ddgs_text
        self._cache: Dict[Tuple[str, int], Tuple[float, List[SearchResult]]] = {}
        self._lock = threading.Lock()

    def search(self, query: str, max_results: Optional[int] = None) -> List[SearchResult]:
        query = (query or "").strip()
        if not query:
            raise ValueError("query is required")
        limit = max(1, min(10, max_results or self.max_results))
        key = (query.lower(), limit)
        now = time.monotonic()
        with self._lock:
            cached = self._cache.get(key)
            if cached and now - cached[0] < self.cache_ttl:
                logger.debug(f"Web search cache hit: {query}")
                return list(cached[1])

        raw = self._search_fn(query, limit)
        results = [self._normalize(r) for r in raw if isinstance(r, dict)]
        results = [r for r in results if r.url or r.title]
        logger.info(f"Web search '{query}': {len(results)} results")
        with self._lock:
            self._prune(now)
            self._cache[key] = (now, results)
        return list(results)

    @staticmethod
    def _normalize(raw: Dict[str, Any]) -> SearchResult:
        return SearchResult(
            title=(raw.get("title") or "").strip(),
            url=(raw.get("href") or raw.get("link") or raw.get("url") or "").strip(),
            snippet=(raw.get("body") or raw.get("snippet") or "").strip()[:SNIPPET_CHARS],
        )

    def _prune(self, now: float) -> None:
        expired = [k for k, (ts, _) in self._cache.items() if now - ts >= self.cache_ttl]
        for k in expired:
            del self._cache[k]

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
