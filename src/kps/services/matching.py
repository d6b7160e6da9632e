from __future__ import annotations

from typing import Iterable, Optional

from kps.domain.models import ProductRecord


class BarcodeMatcher:
    """Resolves a decoded code to a catalog record.

    Exact alternate match first; if nothing matches, a substring match in
    either direction. Decoders sometimes drop leading or trailing digits, and
    the fallback recovers part of those reads at the cost of occasional false
    positives. The first record in catalog order wins.
    """

    def resolve(self, code: str, catalog: Iterable[ProductRecord]) -> Optional[ProductRecord]:
        clean = str(code or "").strip()
        if not clean:
            return None
        records = [r for r in catalog if r.barcode]

        for record in records:
            if clean in record.alternates:
                return record

        for record in records:
            for alt in record.alternates:
                if alt and (alt in clean or clean in alt):
                    return record
        return None
