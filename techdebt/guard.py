"""Snapshot, mutate, verify and roll back on failure.

Both the refactoring applier and the dependency updater run their side effects
through :func:`guarded_mutation`. The helper never raises: the outcome carries
the mutation's value, the error that stopped it, and whether the rollback ran.
A rollback that itself fails leaves the tree without its safety net, which the
outcome reports as ``unsafe``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from .errors import VerificationFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S")


@dataclass
class GuardedOutcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None
    backup_taken: bool = False
    rolled_back: bool = False
    rollback_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def unsafe(self) -> bool:
        return self.rollback_error is not None


def guarded_mutation(
    mutate: Callable[[], T],
    *,
    snapshot: Optional[Callable[[], S]] = None,
    restore: Optional[Callable[[S], None]] = None,
    verify: Optional[Callable[[T], bool]] = None,
    verify_error: str = "Verification failed",
) -> GuardedOutcome[T]:
    outcome: GuardedOutcome[T] = GuardedOutcome()
    token = None
    if snapshot is not None:
        try:
            token = snapshot()
        except Exception as exc:  # noqa: BLE001 - reported through the outcome
            outcome.error = exc
            return outcome
        outcome.backup_taken = True

    try:
        outcome.value = mutate()
        if verify is not None and not verify(outcome.value):
            raise VerificationFailed(verify_error)
    except Exception as exc:  # noqa: BLE001 - reported through the outcome
        outcome.error = exc
        if outcome.backup_taken and restore is not None:
            try:
                restore(token)
                outcome.rolled_back = True
            except Exception as rollback_exc:  # noqa: BLE001
                logger.error("Rollback failed, tree left in an unsafe state: %s", rollback_exc)
                outcome.rollback_error = str(rollback_exc)
    return outcome
