"""Query Lifecycle Manager: find, create and poll coverage-scorer queries.

A scorer "query" is a stateful, billable resource on the scoring service. The
manager guarantees that, per SessionQueryCache, at most one query is created
for a normalized keyword: the cache is consulted before every create call and
concurrent resolutions of the same keyword are serialized.
"""

from __future__ import annotations

import asyncio
import logging
import re

from article_engine.config import PipelineSettings
from article_engine.errors import ProviderError, QueryNotReadyError
from article_engine.models import CachedQuery, CoverageAnalysis, QueryBundle
from article_engine.utils.async_tools import with_timeout

log = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")


def normalize_keyword(keyword: str) -> str:
    """Cache key for a keyword: lowercase, no punctuation or years, single spaces."""
    text = (keyword or "").lower()
    text = re.sub(r"[-_]+", " ", text)
    text = _YEAR_RE.sub("", text)
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def match_score(candidate: str, keyword: str) -> int:
    """Score how well an existing query's keyword matches ours (0-100).

    Exact match 100, containment 80, token overlap >= 50% scaled up to 70.
    Both arguments are normalized first.
    """
    a, b = normalize_keyword(candidate), normalize_keyword(keyword)
    if not a or not b:
        return 0
    if a == b:
        return 100
    if a in b or b in a:
        return 80
    a_words, b_words = set(a.split()), set(b.split())
    union = a_words | b_words
    overlap = len(a_words & b_words) / len(union) if union else 0
    if overlap >= 0.5:
        return round(overlap * 70)
    return 0


class SessionQueryCache:
    """Normalized keyword -> CachedQuery for the lifetime of a process (or a test).

    Passed into the manager explicitly so separate runs can share one cache or
    use isolated ones.
    """

    def __init__(self):
        self._entries: dict[str, CachedQuery] = {}

    def get(self, key: str) -> CachedQuery | None:
        return self._entries.get(key)

    def put(self, key: str, entry: CachedQuery):
        self._entries[key] = entry

    def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self):
        self._entries.clear()

    def entries(self) -> list[CachedQuery]:
        return list(self._entries.values())

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class QueryLifecycleManager:
    """Resolves a keyword to a ready QueryBundle on the coverage scorer."""

    def __init__(self, scorer, cache: SessionQueryCache | None = None, settings: PipelineSettings | None = None):
        self.scorer = scorer
        self.cache = cache if cache is not None else SessionQueryCache()
        self.settings = settings or PipelineSettings()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def resolve_query(self, keyword: str, project_id: str, force_new: bool = False) -> QueryBundle | None:
        """Return a QueryBundle for ``keyword``, or None when the scorer can't provide one.

        ``force_new`` skips the search for an existing query. The session cache
        is still honored, so callers replacing a broken query must call
        remove_from_cache() first.
        """
        key = normalize_keyword(keyword)
        if not key:
            log.warning(f"Keyword '{keyword}' is empty after normalization, skipping scorer")
            return None

        lock = self._lock_for(key)
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                query_id = await self._obtain_query_id(key, project_id, force_new)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]
        if not query_id:
            return None

        analysis = await self._poll_analysis(query_id)
        if analysis is None:
            return None

        cached = self.cache.get(key)
        if cached and cached.query_id == query_id:
            cached.status = analysis.status or "ready"

        log.info(f"Scorer query {query_id} ready: {analysis.summary()}")
        return QueryBundle(
            query_id=query_id,
            keyword=keyword,
            analysis=analysis,
            coverage_score=analysis.content_score or None,
        )

    def remove_from_cache(self, keyword: str) -> bool:
        """Forget the cached query for ``keyword`` so the next resolution can replace it."""
        key = normalize_keyword(keyword)
        removed = self.cache.remove(key)
        if removed:
            log.info(f"Removed session cache entry for '{key}'")
        return removed

    async def _obtain_query_id(self, key: str, project_id: str, force_new: bool) -> str | None:
        cached = self.cache.get(key)
        if cached:
            log.info(f"Session cache hit: '{key}' -> query {cached.query_id} (status={cached.status})")
            return cached.query_id

        if not force_new:
            try:
                existing = await self.find_existing_query(project_id, key)
            except ProviderError as e:
                log.warning(f"Query search failed for '{key}': {e}")
                existing = None
            if existing:
                self.cache.put(key, CachedQuery(
                    query_id=existing["id"],
                    keyword=existing["keyword"],
                    status=existing["status"],
                ))
                return existing["id"]

        log.info(f"Creating new scorer query for '{key}'")
        try:
            query_id = await with_timeout(
                self.scorer.create_query(project_id, key),
                self.settings.network_timeout,
                "create query",
            )
        except ProviderError as e:
            log.warning(f"Could not create scorer query for '{key}': {e}. Coverage optimization disabled.")
            return None
        if not query_id:
            log.warning(f"Scorer returned no query id for '{key}'")
            return None

        self.cache.put(key, CachedQuery(query_id=query_id, keyword=key, status="in_progress"))
        log.info(f"Created scorer query {query_id} for '{key}'")
        return query_id

    async def find_existing_query(self, project_id: str, keyword: str) -> dict | None:
        """Best-matching existing query in the project (any status), or None."""
        queries = await with_timeout(
            self.scorer.list_queries(project_id),
            self.settings.network_timeout,
            "list queries",
        )
        best, best_score = None, 0
        for q in queries or []:
            candidate = (q.get("keyword") or "").strip()
            if not candidate:
                continue
            score = match_score(candidate, keyword)
            if score > best_score:
                best, best_score = q, score

        if best is None:
            log.info(f"No existing query for '{keyword}' among {len(queries or [])} queries")
            return None

        query_id = best.get("query") or best.get("id") or ""
        if not query_id:
            return None
        status = (best.get("status") or "unknown").lower()
        log.info(f"Found existing query '{best['keyword']}' id={query_id} status={status} (match={best_score})")
        return {"id": query_id, "keyword": best["keyword"], "status": status, "score": best_score}

    def poll_delay(self, attempt: int) -> float:
        """Seconds to wait after poll ``attempt`` (1-based): short at first, then growing."""
        s = self.settings
        if attempt <= s.poll_fast_attempts:
            return s.poll_fast_delay
        return min(s.poll_max_delay, s.poll_slow_delay * (attempt - s.poll_fast_attempts))

    async def _poll_analysis(self, query_id: str) -> CoverageAnalysis | None:
        max_attempts = self.settings.poll_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                analysis = await with_timeout(
                    self.scorer.get_analysis(query_id),
                    self.settings.network_timeout,
                    "get analysis",
                )
            except QueryNotReadyError as e:
                log.info(f"Query {query_id} not ready ({attempt}/{max_attempts}): {e}")
            except ProviderError as e:
                # Only a bare timeout is polled again
                if e.status is not None:
                    log.warning(f"Aborting analysis polling for {query_id}: {e}")
                    return None
                log.warning(f"Timed out polling {query_id} ({attempt}/{max_attempts}): {e}")
            else:
                if not analysis.has_terms:
                    log.warning(f"Query {query_id} is ready but has no terms. Proceeding anyway.")
                return analysis

            if attempt < max_attempts:
                await asyncio.sleep(self.poll_delay(attempt))

        log.warning(f"Query {query_id} analysis not ready after {max_attempts} attempts")
        return None
