import pytest

from techdebt.errors import VerificationFailed
from techdebt.guard import guarded_mutation


class Tree:
    def __init__(self):
        self.state = "original"
        self.restored = 0

    def snapshot(self):
        return self.state

    def restore(self, token):
        self.restored += 1
        self.state = token


def test_success_keeps_changes():
    tree = Tree()

    def mutate():
        tree.state = "changed"
        return 1

    outcome = guarded_mutation(mutate, snapshot=tree.snapshot, restore=tree.restore)
    assert outcome.ok
    assert outcome.value == 1
    assert outcome.backup_taken
    assert not outcome.rolled_back
    assert tree.state == "changed"


def test_failure_rolls_back():
    tree = Tree()

    def mutate():
        tree.state = "half-done"
        raise RuntimeError("boom")

    outcome = guarded_mutation(mutate, snapshot=tree.snapshot, restore=tree.restore)
    assert not outcome.ok
    assert str(outcome.error) == "boom"
    assert outcome.rolled_back
    assert tree.state == "original"
    assert not outcome.unsafe


def test_failed_verification_rolls_back():
    tree = Tree()

    def mutate():
        tree.state = "changed"

    outcome = guarded_mutation(
        mutate,
        snapshot=tree.snapshot,
        restore=tree.restore,
        verify=lambda _: False,
        verify_error="Tests failed",
    )
    assert isinstance(outcome.error, VerificationFailed)
    assert str(outcome.error) == "Tests failed"
    assert tree.state == "original"


def test_no_snapshot_means_no_rollback():
    tree = Tree()

    def mutate():
        tree.state = "changed"
        raise RuntimeError("boom")

    outcome = guarded_mutation(mutate, restore=tree.restore)
    assert not outcome.backup_taken
    assert not outcome.rolled_back
    assert tree.restored == 0
    assert tree.state == "changed"


def test_snapshot_failure_skips_mutation():
    calls = []

    def snapshot():
        raise OSError("disk full")

    outcome = guarded_mutation(lambda: calls.append(1), snapshot=snapshot, restore=lambda _: None)
    assert calls == []
    assert not outcome.ok
    assert not outcome.backup_taken


def test_rollback_failure_is_unsafe():
    def restore(_token):
        raise OSError("read-only")

    def mutate():
        raise RuntimeError("boom")

    outcome = guarded_mutation(mutate, snapshot=lambda: None, restore=restore)
    assert outcome.unsafe
    assert outcome.rollback_error == "read-only"
    assert not outcome.rolled_back


@pytest.mark.parametrize("verified", [True, False])
def test_verify_only_runs_after_mutation(verified):
    seen = []
    outcome = guarded_mutation(lambda: "value", verify=lambda value: seen.append(value) or verified)
    assert seen == ["value"]
    assert outcome.ok is verified
