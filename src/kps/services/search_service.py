from __future__ import annotations

from typing import Iterable, Optional

from kps.domain.models import ProductRecord

MIN_QUERY_LENGTH = 2

NAME_SCORE = 100
CODE_SCORE = 80
BARCODE_SCORE = 70


class SearchEngine:
    def score(self, record: ProductRecord, query: str) -> int:
        score = 0
        if record.name and query in record.name.lower():
            score += NAME_SCORE
        if record.code and query in record.code.lower():
            score += CODE_SCORE
        if any(query in alt.lower() for alt in record.alternates):
            score += BARCODE_SCORE
        return score

    def search(self, catalog: Iterable[ProductRecord], query: str, limit: Optional[int] = None) -> list[ProductRecord]:
        q = (query or "").strip().lower()
        if len(q) < MIN_QUERY_LENGTH:
            return []

        scored = [(self.score(r, q), r) for r in catalog]
        # sorted() is stable, so equal scores keep catalog order
        ranked = sorted((item for item in scored if item[0] > 0), key=lambda item: item[0], reverse=True)
        results = [r for _score, r in ranked]
        return results[:limit] if limit is not None else results
