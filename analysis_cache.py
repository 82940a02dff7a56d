"""In-memory cache of the last successful analysis per symbol.

Entries live for the lifetime of the process: there is no expiry, no size
bound and no removal API.  A newer result for the same symbol replaces the
older one.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from analysis_schema import AnalysisResult


class AnalysisCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, AnalysisResult] = {}

    def get(self, symbol: str) -> Optional[AnalysisResult]:
        with self._lock:
            return self._entries.get(symbol)

    def put(self, symbol: str, result: AnalysisResult) -> None:
        with self._lock:
            self._entries[symbol] = result

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, symbol: object) -> bool:
        with self._lock:
            return symbol in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["AnalysisCache"]
