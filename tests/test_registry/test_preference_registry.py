"""
Unit tests for the Preference Registry.
Covers the mutual-exclusion invariant, persistence policy and concurrency.
"""

import tempfile
import threading
from unittest.mock import Mock, patch

import pytest

from feedprefs.errors import InvalidTopic, StoreUnavailable
from feedprefs.models.preference_set import PreferenceSet
from feedprefs.models.topic import Topic
from feedprefs.registry.preference_registry import PreferenceRegistry
from feedprefs.utils.storage import PreferenceStore

PROFILE = "viewer"


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield PreferenceStore(tmpdir)


@pytest.fixture
def registry(store):
    reg = PreferenceRegistry(store)
    yield reg
    reg.close()


def test_starts_empty(registry):
    assert registry.current_preferred(PROFILE) == frozenset()
    assert registry.current_blocked(PROFILE) == frozenset()
    assert registry.version(PROFILE) == 0


def test_add_preferred_normalizes(registry):
    prefs = registry.add_preferred(PROFILE, "  Retro   GAMING ")

    assert prefs.preferred == {Topic("retro gaming")}
    assert registry.current_preferred(PROFILE) == {Topic("retro gaming")}


def test_add_preferred_removes_from_blocked(registry):
    registry.add_blocked(PROFILE, "drama")
    registry.add_preferred(PROFILE, "Drama")

    assert Topic("drama") in registry.current_preferred(PROFILE)
    assert Topic("drama") not in registry.current_blocked(PROFILE)


def test_add_blocked_removes_from_preferred(registry):
    registry.add_preferred(PROFILE, "jazz")
    registry.add_blocked(PROFILE, "JAZZ")

    assert Topic("jazz") in registry.current_blocked(PROFILE)
    assert Topic("jazz") not in registry.current_preferred(PROFILE)


@pytest.mark.parametrize("label", ["asmr", "Family Vlog", "lo-fi", "c++"])
def test_sets_stay_disjoint(registry, label):
    registry.add_preferred(PROFILE, label)
    assert Topic(label) not in registry.current_blocked(PROFILE)

    registry.add_blocked(PROFILE, label)
    assert Topic(label) not in registry.current_preferred(PROFILE)


def test_add_preferred_is_idempotent(registry):
    once = registry.add_preferred(PROFILE, "jazz")
    twice = registry.add_preferred(PROFILE, "Jazz")

    assert once == twice
    assert registry.version(PROFILE) == 1


def test_remove_absent_topic_is_noop(registry):
    prefs = registry.remove_preferred(PROFILE, "jazz")
    registry.remove_blocked(PROFILE, "asmr")

    assert prefs == PreferenceSet.empty()
    assert registry.version(PROFILE) == 0


def test_remove_topics(registry):
    registry.add_preferred(PROFILE, "jazz")
    registry.add_blocked(PROFILE, "asmr")

    registry.remove_preferred(PROFILE, "JAZZ")
    registry.remove_blocked(PROFILE, " asmr")

    assert registry.snapshot(PROFILE) == PreferenceSet.empty()


def test_toggle_preferred(registry):
    registry.toggle_preferred(PROFILE, "jazz")
    assert Topic("jazz") in registry.current_preferred(PROFILE)

    registry.toggle_preferred(PROFILE, "jazz")
    assert Topic("jazz") not in registry.current_preferred(PROFILE)


@pytest.mark.parametrize("raw", ["", "   ", "!!!"])
def test_invalid_topic_rejected_without_change(registry, raw):
    with pytest.raises(InvalidTopic):
        registry.add_blocked(PROFILE, raw)

    assert registry.version(PROFILE) == 0
    assert registry.snapshot(PROFILE) == PreferenceSet.empty()


def test_snapshots_are_immutable(registry):
    before = registry.add_preferred(PROFILE, "jazz")
    registry.add_preferred(PROFILE, "rock")

    assert before.preferred == {Topic("jazz")}
    with pytest.raises(AttributeError):
        registry.current_preferred(PROFILE).add(Topic("pop"))


def test_mutations_are_persisted(store):
    with PreferenceRegistry(store) as registry:
        registry.add_preferred(PROFILE, "jazz")
        registry.add_blocked(PROFILE, "asmr")
        assert registry.flush()

    assert store.load(PROFILE) == PreferenceSet(preferred=["jazz"], blocked=["asmr"])


def test_loads_existing_preferences(store):
    store.save(PROFILE, PreferenceSet(preferred=["jazz"], blocked=["asmr"]))

    with PreferenceRegistry(store) as registry:
        assert registry.current_preferred(PROFILE) == {Topic("jazz")}
        assert registry.current_blocked(PROFILE) == {Topic("asmr")}


def test_noop_mutation_does_not_save(store):
    with PreferenceRegistry(store) as registry:
        with patch.object(store, "save", wraps=store.save) as save:
            registry.add_preferred(PROFILE, "jazz")
            registry.add_preferred(PROFILE, "jazz")
            registry.remove_blocked(PROFILE, "asmr")
            registry.flush()

        assert save.call_count == 1


def test_save_failure_keeps_in_memory_state(store):
    """Failed saves are reported, never raised, and never roll back."""
    errors = []
    with PreferenceRegistry(store, on_store_error=lambda pid, e: errors.append((pid, e))) as registry:
        failure = StoreUnavailable(PROFILE, "disk full")
        with patch.object(store, "save", side_effect=failure):
            prefs = registry.add_preferred(PROFILE, "jazz")
            registry.flush()

        assert prefs.preferred == {Topic("jazz")}
        assert registry.current_preferred(PROFILE) == {Topic("jazz")}
        assert registry.last_save_error(PROFILE) is failure
        assert errors == [(PROFILE, failure)]

        # Next successful save overwrites the failed one
        registry.add_preferred(PROFILE, "rock")
        registry.flush()

        assert registry.last_save_error(PROFILE) is None

    assert store.load(PROFILE).preferred == {Topic("jazz"), Topic("rock")}


def test_load_failure_starts_empty(store):
    errors = []
    failure = StoreUnavailable(PROFILE, "unreadable")

    with patch.object(store, "load", side_effect=failure):
        with PreferenceRegistry(store, on_store_error=lambda pid, e: errors.append(e)) as registry:
            assert registry.snapshot(PROFILE) == PreferenceSet.empty()

    assert errors == [failure]


def flaky_load(store, failures):
    """Make the first `failures` loads raise, then read the real file."""
    real_load = store.load
    calls = []

    def load(profile_id):
        calls.append(profile_id)
        if len(calls) <= failures:
            raise StoreUnavailable(profile_id, "transient read error")
        return real_load(profile_id)

    return load


def test_transient_load_failure_keeps_stored_preferences(store):
    """Stored preferences survive a failed first load followed by mutations."""
    stored = PreferenceSet(preferred=["jazz", "linux", "cooking"], blocked=["asmr"])
    store.save(PROFILE, stored)
    errors = []

    with PreferenceRegistry(store, on_store_error=lambda pid, e: errors.append(e)) as registry:
        with patch.object(store, "load", side_effect=flaky_load(store, failures=1)):
            assert registry.snapshot(PROFILE) == PreferenceSet.empty()

            registry.add_preferred(PROFILE, "chess")
            registry.flush()
            prefs = registry.add_preferred(PROFILE, "go")
            registry.flush()

        assert prefs.preferred == {Topic(t) for t in ("jazz", "linux", "cooking", "chess", "go")}
        assert prefs.blocked == {Topic("asmr")}

    assert len(errors) == 1
    assert store.load(PROFILE) == prefs


def test_changes_are_held_until_store_is_readable(store):
    """No save happens while the stored file cannot be read; held changes replay on recovery."""
    store.save(PROFILE, PreferenceSet(preferred=["jazz", "drama"], blocked=["asmr"]))
    errors = []

    with PreferenceRegistry(store, on_store_error=lambda pid, e: errors.append(e)) as registry:
        with patch.object(store, "load", side_effect=flaky_load(store, failures=3)):
            with patch.object(store, "save", wraps=store.save) as save:
                registry.add_preferred(PROFILE, "chess")
                registry.remove_preferred(PROFILE, "drama")
                registry.flush()

                assert save.call_count == 0
                assert registry.current_preferred(PROFILE) == {Topic("chess")}
                assert len(errors) == 3

                # Fourth load succeeds
                registry.add_blocked(PROFILE, "prank")
                registry.flush()

                assert save.call_count == 1

        assert registry.snapshot(PROFILE) == PreferenceSet(
            preferred=["jazz", "chess"], blocked=["asmr", "prank"]
        )

    assert store.load(PROFILE) == PreferenceSet(preferred=["jazz", "chess"], blocked=["asmr", "prank"])


def test_noop_change_still_saves_after_recovery(store):
    store.save(PROFILE, PreferenceSet(preferred=["jazz"]))

    with PreferenceRegistry(store) as registry:
        with patch.object(store, "load", side_effect=flaky_load(store, failures=2)):
            registry.add_blocked(PROFILE, "asmr")
            registry.flush()

            # Already blocked in memory; the recovered stored topics still need saving
            prefs = registry.add_blocked(PROFILE, "asmr")
            registry.flush()

        assert prefs == PreferenceSet(preferred=["jazz"], blocked=["asmr"])

    assert store.load(PROFILE) == PreferenceSet(preferred=["jazz"], blocked=["asmr"])


def test_failing_error_handler_is_contained(store):
    handler = Mock(side_effect=RuntimeError("ui gone"))
    with PreferenceRegistry(store, on_store_error=handler) as registry:
        with patch.object(store, "save", side_effect=StoreUnavailable(PROFILE, "disk full")):
            registry.add_preferred(PROFILE, "jazz")
            registry.flush()

    handler.assert_called_once()


def test_mutation_does_not_wait_for_save(store):
    """The mutating call returns while the durable save is still blocked."""
    started = threading.Event()
    release = threading.Event()
    real_save = store.save

    def slow_save(profile_id, prefs):
        started.set()
        release.wait(timeout=5)
        real_save(profile_id, prefs)

    with PreferenceRegistry(store) as registry:
        with patch.object(store, "save", side_effect=slow_save):
            registry.add_preferred(PROFILE, "jazz")
            assert started.wait(timeout=5)

            # Save still in flight; in-memory state already updated
            assert registry.current_preferred(PROFILE) == {Topic("jazz")}
            assert registry.flush(timeout=0.05) is False

            release.set()
            assert registry.flush()

    assert store.load(PROFILE).preferred == {Topic("jazz")}


def test_superseded_saves_are_skipped(store):
    """Queued saves older than the latest mutation are not written."""
    started = threading.Event()
    release = threading.Event()
    written = []

    def recording_save(profile_id, prefs):
        if not written:
            started.set()
            release.wait(timeout=5)
        written.append(prefs)

    with PreferenceRegistry(store, max_workers=2) as registry:
        with patch.object(store, "save", side_effect=recording_save):
            registry.add_preferred(PROFILE, "a1")
            assert started.wait(timeout=5)
            registry.add_preferred(PROFILE, "b2")
            registry.add_preferred(PROFILE, "c3")

            release.set()
            registry.flush()

    assert len(written) == 2
    assert written[0].preferred == {Topic("a1")}
    assert written[-1].preferred == {Topic("a1"), Topic("b2"), Topic("c3")}


def test_concurrent_mutations_lose_no_update(store):
    """Concurrent callers adding different topics all end up persisted."""
    labels = [f"topic {i}" for i in range(20)]
    barrier = threading.Barrier(len(labels))

    with PreferenceRegistry(store, max_workers=4) as registry:
        def worker(label):
            barrier.wait(timeout=5)
            registry.add_preferred(PROFILE, label)

        threads = [threading.Thread(target=worker, args=(label,)) for label in labels]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert registry.flush()
        assert registry.current_preferred(PROFILE) == {Topic(label) for label in labels}
        assert registry.version(PROFILE) == len(labels)

    assert store.load(PROFILE).preferred == {Topic(label) for label in labels}


def test_interleaved_preferred_and_blocked_stay_disjoint(store):
    with PreferenceRegistry(store, max_workers=4) as registry:
        def flip(n):
            for _ in range(n):
                registry.add_preferred(PROFILE, "drama")
                registry.add_blocked(PROFILE, "drama")

        threads = [threading.Thread(target=flip, args=(25,)) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        registry.flush()

        snapshot = registry.snapshot(PROFILE)
        assert not (snapshot.preferred & snapshot.blocked)

    stored = store.load(PROFILE)
    assert stored == snapshot


def test_profiles_are_isolated(registry):
    registry.add_preferred("alice", "jazz")
    registry.add_blocked("bob", "jazz")

    assert registry.current_preferred("alice") == {Topic("jazz")}
    assert registry.current_preferred("bob") == frozenset()
    assert registry.current_blocked("bob") == {Topic("jazz")}


def test_subscribe_and_unsubscribe(registry):
    events = []
    unsubscribe = registry.subscribe(lambda pid, prefs: events.append((pid, prefs)))

    snapshot = registry.add_preferred(PROFILE, "jazz")
    registry.add_preferred(PROFILE, "jazz")  # no change, no event
    unsubscribe()
    registry.add_preferred(PROFILE, "rock")

    assert events == [(PROFILE, snapshot)]


def test_listeners_see_concurrent_changes_in_order(registry):
    """A slow listener for one change cannot be overtaken by a later change."""
    events = []
    entered = threading.Event()
    release = threading.Event()

    def listener(pid, prefs):
        events.append(sorted(t.label for t in prefs.preferred))
        if len(events) == 1:
            entered.set()
            release.wait(timeout=5)

    registry.subscribe(listener)

    first = threading.Thread(target=registry.add_preferred, args=(PROFILE, "jazz"))
    first.start()
    assert entered.wait(timeout=5)

    second = threading.Thread(target=registry.add_preferred, args=(PROFILE, "rock"))
    second.start()
    second.join(timeout=0.2)
    assert second.is_alive()

    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert events == [["jazz"], ["jazz", "rock"]]
    assert events[-1] == sorted(t.label for t in registry.current_preferred(PROFILE))


def test_failing_listener_does_not_break_mutation(registry):
    registry.subscribe(Mock(side_effect=RuntimeError("render failed")))

    prefs = registry.add_preferred(PROFILE, "jazz")

    assert prefs.preferred == {Topic("jazz")}


def test_closed_registry_rejects_mutations(store):
    registry = PreferenceRegistry(store)
    registry.close()

    with pytest.raises(RuntimeError, match="closed"):
        registry.add_preferred(PROFILE, "jazz")


def test_invalid_profile_id(registry):
    with pytest.raises(ValueError, match="Invalid profile id"):
        registry.add_preferred("../escape", "jazz")


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
