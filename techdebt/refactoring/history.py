"""Refactoring history stores."""
from __future__ import annotations

import threading
from typing import List, Protocol

from ..models import RefactoringResult


class HistoryStore(Protocol):
    def append(self, result: RefactoringResult) -> None:
        ...

    def list(self) -> List[RefactoringResult]:
        ...


class InMemoryHistory:
    """Keeps results for the lifetime of the process."""

    def __init__(self) -> None:
        self._results: List[RefactoringResult] = []
        self._lock = threading.Lock()

    def append(self, result: RefactoringResult) -> None:
        with self._lock:
            self._results.append(result)

    def list(self) -> List[RefactoringResult]:
        with self._lock:
            return list(self._results)
