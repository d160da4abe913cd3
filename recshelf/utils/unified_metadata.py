"""
Unified metadata aggregation.

Fans one query out to every enabled source concurrently and concatenates
the results in registration order. Also hosts the best-match policy and the
description fallback chain used by enrichment.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from recshelf.domain.models import CatalogResult, EnrichmentPass
from .book_utils import titles_match
from .metadata_providers import GoogleBooksAdapter, OpenLibraryAdapter, SourceAdapter
from .scrapers import AudibleAdapter, GoodreadsAdapter

_META_LOG = logging.getLogger(__name__)

# Registration order is also result order and merge precedence
PROVIDER_CLASSES = (
    GoogleBooksAdapter,
    OpenLibraryAdapter,
    AudibleAdapter,
    GoodreadsAdapter,
)


def best_match(results: Sequence[CatalogResult], title: Optional[str]) -> Optional[CatalogResult]:
    """Prefer a result whose title contains or is contained in ``title``; else the first one."""
    if not results:
        return None
    for result in results:
        if titles_match(result.title, title):
            return result
    return results[0]


class MetadataAggregator:
    def __init__(self, adapters: Iterable[SourceAdapter]):
        self.adapters: List[SourceAdapter] = list(adapters)
        self._pass_by_source = {a.name: a.enrichment_pass for a in self.adapters}

    def search_all(self, query: str) -> List[CatalogResult]:
        if not query or not self.adapters:
            return []

        collected: Dict[int, List[CatalogResult]] = {}
        with ThreadPoolExecutor(max_workers=len(self.adapters)) as pool:
            futures = {pool.submit(adapter.search, query): idx for idx, adapter in enumerate(self.adapters)}
            for fut in as_completed(futures):
                idx = futures[fut]
                try:
                    collected[idx] = list(fut.result() or [])
                except Exception as e:
                    _META_LOG.warning(
                        f"[UNIFIED_METADATA][{self.adapters[idx].name.upper()}][EXC] query={query!r} err={e}"
                    )
                    collected[idx] = []

        results: List[CatalogResult] = []
        for idx in range(len(self.adapters)):
            results.extend(collected.get(idx, []))
        return results

    def group_by_pass(self, results: Sequence[CatalogResult]) -> List[Tuple[EnrichmentPass, List[CatalogResult]]]:
        """Split results into merge passes, earliest pass first."""
        groups: Dict[EnrichmentPass, List[CatalogResult]] = {}
        for result in results:
            stage = self._pass_by_source.get(result.source, EnrichmentPass.CATALOG)
            groups.setdefault(stage, []).append(result)
        return sorted(groups.items(), key=lambda pair: pair[0].value)

    def fetch_description(self, title: str, authors: Optional[str] = None) -> Optional[str]:
        """Walk every adapter offering a description lookup until one returns text."""
        for adapter in self.adapters:
            lookup = getattr(adapter, 'fetch_description', None)
            if not callable(lookup):
                continue
            try:
                text = lookup(title, authors)
            except Exception as e:
                _META_LOG.warning(f"[UNIFIED_METADATA][{adapter.name.upper()}][DESCRIPTION][EXC] err={e}")
                continue
            if text:
                return text
        return None

    def get_adapter(self, name: str) -> Optional[SourceAdapter]:
        return next((a for a in self.adapters if a.name == name), None)

    def close(self) -> None:
        for adapter in self.adapters:
            adapter.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


def build_aggregator(settings: Optional[Dict[str, Any]] = None, provider_classes=PROVIDER_CLASSES) -> MetadataAggregator:
    """Instantiate every registered adapter and keep the ones enabled in ``settings``."""
    adapters = [cls(settings) for cls in provider_classes]
    enabled = [a for a in adapters if a.enabled]
    for adapter in adapters:
        if not adapter.enabled:
            adapter.close()
    _META_LOG.debug(f"[UNIFIED_METADATA] enabled sources: {[a.name for a in enabled]}")
    return MetadataAggregator(enabled)
