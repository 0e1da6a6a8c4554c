"""
Preference Registry - authoritative in-memory view of each profile's
preferred and blocked topics.

Mutations update the in-memory PreferenceSet under a per-profile writer lock,
then hand the durable save to a background executor. Readers never lock:
they read the current immutable snapshot.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple, Union

import config.settings as settings
from feedprefs.errors import StoreUnavailable
from feedprefs.models.preference_set import PreferenceSet
from feedprefs.models.topic import Topic
from feedprefs.utils.storage import PreferenceStore

logger = logging.getLogger(__name__)

TopicInput = Union[Topic, str]
ChangeListener = Callable[[str, PreferenceSet], None]
StoreErrorHandler = Callable[[str, StoreUnavailable], None]
Transition = Callable[[PreferenceSet, Topic], PreferenceSet]


class _ProfileState:
    """
    Live state of one profile. `prefs` is replaced, never mutated.

    While `loaded` is False the stored file could not be read: changes are
    kept in memory and recorded in `held_changes`, and nothing is saved.
    """

    def __init__(self, prefs: PreferenceSet, loaded: bool = True):
        self.prefs = prefs
        self.loaded = loaded
        self.held_changes: List[Tuple[Transition, Topic]] = []
        self.version = 0
        self.write_lock = threading.Lock()
        self.save_lock = threading.Lock()
        self.committed_version = 0
        self.last_save_error: Optional[StoreUnavailable] = None


class PreferenceRegistry:
    """
    Owns the live PreferenceSet of every active profile.

    Guarantees:
    - A topic is never both preferred and blocked
    - Mutations to one profile apply in the order they take the writer lock
    - Readers see a whole snapshot, before or after a mutation
    - The most recent state is the one that ends up on disk
    """

    def __init__(
        self,
        store: PreferenceStore,
        max_workers: int = settings.SAVE_WORKERS,
        on_store_error: Optional[StoreErrorHandler] = None
    ):
        """
        Initialize registry.

        Args:
            store: Durable preference store
            max_workers: Background threads used for saves
            on_store_error: Called with (profile_id, error) when a load or save fails
        """
        self.store = store
        self.on_store_error = on_store_error

        self._profiles: Dict[str, _ProfileState] = {}
        self._profiles_lock = threading.Lock()

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="preference-save"
        )
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

        self._listeners: List[ChangeListener] = []
        self._listeners_lock = threading.Lock()

        self._closed = False

    # Mutations

    def add_preferred(self, profile_id: str, topic: TopicInput) -> PreferenceSet:
        """
        Mark a topic as preferred, removing it from blocked if present.

        Args:
            profile_id: Viewer profile identifier
            topic: Topic or raw label (normalized before use)

        Returns:
            Snapshot after the change

        Raises:
            InvalidTopic: If the label is empty or has no letters/digits
        """
        return self._mutate(profile_id, topic, PreferenceSet.with_preferred)

    def remove_preferred(self, profile_id: str, topic: TopicInput) -> PreferenceSet:
        """Remove a preferred topic. Removing an absent topic is a no-op."""
        return self._mutate(profile_id, topic, PreferenceSet.without_preferred)

    def add_blocked(self, profile_id: str, topic: TopicInput) -> PreferenceSet:
        """
        Block a topic, removing it from preferred if present.

        Args:
            profile_id: Viewer profile identifier
            topic: Topic or raw label (normalized before use)

        Returns:
            Snapshot after the change
        """
        return self._mutate(profile_id, topic, PreferenceSet.with_blocked)

    def remove_blocked(self, profile_id: str, topic: TopicInput) -> PreferenceSet:
        """Unblock a topic. Unblocking an absent topic is a no-op."""
        return self._mutate(profile_id, topic, PreferenceSet.without_blocked)

    def toggle_preferred(self, profile_id: str, topic: TopicInput) -> PreferenceSet:
        """Add the topic to preferred, or remove it if already preferred."""
        def toggle(prefs: PreferenceSet, t: Topic) -> PreferenceSet:
            if t in prefs.preferred:
                return prefs.without_preferred(t)
            return prefs.with_preferred(t)

        return self._mutate(profile_id, topic, toggle)

    # Reads

    def snapshot(self, profile_id: str) -> PreferenceSet:
        """Both sets of a profile from one consistent read."""
        return self._state(profile_id).prefs

    def current_preferred(self, profile_id: str) -> FrozenSet[Topic]:
        return self._state(profile_id).prefs.preferred

    def current_blocked(self, profile_id: str) -> FrozenSet[Topic]:
        return self._state(profile_id).prefs.blocked

    def version(self, profile_id: str) -> int:
        """Number of state changes applied to the profile since it was loaded."""
        return self._state(profile_id).version

    def last_save_error(self, profile_id: str) -> Optional[StoreUnavailable]:
        """Error of the most recent failed save, cleared by the next successful one."""
        return self._state(profile_id).last_save_error

    # Change notification

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a callback invoked as listener(profile_id, snapshot)
        after every state change.

        Calls for one profile arrive in version order. They run under that
        profile's writer lock, so a listener must not mutate the same profile.

        Returns:
            Function that removes the listener
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # Lifecycle

    def flush(self, timeout: Optional[float] = settings.SAVE_TIMEOUT_SECONDS) -> bool:
        """
        Wait for all scheduled saves to finish.

        Args:
            timeout: Seconds to wait, None to wait indefinitely

        Returns:
            True if no saves are still pending
        """
        while True:
            with self._pending_lock:
                pending = {f for f in self._pending if not f.done()}
            if not pending:
                return True
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                logger.warning(f"{len(not_done)} preference saves still pending after {timeout}s")
                return False

    def close(self) -> None:
        """Flush pending saves and stop the save executor."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)

        for profile_id, state in self._profiles.items():
            if state.held_changes:
                logger.warning(
                    f"Profile '{profile_id}' closed with {len(state.held_changes)} "
                    f"unsaved changes; the stored file was never readable"
                )
        logger.info("Preference registry closed")

    def __enter__(self) -> "PreferenceRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Internals

    def _state(self, profile_id: str) -> _ProfileState:
        """Get the live state of a profile, loading it on first use."""
        state = self._profiles.get(profile_id)
        if state is not None:
            return state

        with self._profiles_lock:
            state = self._profiles.get(profile_id)
            if state is None:
                prefs = self._load(profile_id)
                if prefs is None:
                    logger.warning(
                        f"Starting profile '{profile_id}' with empty preferences; "
                        f"saves are held until the stored file can be read"
                    )
                    state = _ProfileState(PreferenceSet.empty(), loaded=False)
                else:
                    state = _ProfileState(prefs)
                self._profiles[profile_id] = state
            return state

    def _load(self, profile_id: str) -> Optional[PreferenceSet]:
        """Load stored preferences, or None (reported) if the store fails."""
        try:
            prefs = self.store.load(profile_id)
            logger.info(
                f"Loaded profile '{profile_id}': "
                f"{len(prefs.preferred)} preferred, {len(prefs.blocked)} blocked"
            )
            return prefs
        except StoreUnavailable as e:
            logger.warning(f"{e}")
            self._report_store_error(profile_id, e)
            return None

    def _recover(self, profile_id: str, state: _ProfileState) -> bool:
        """
        Retry the load of a profile whose stored file could not be read.
        Must be called with the profile's writer lock held.

        On success the held changes are replayed on top of the stored
        preferences, so nothing stored and nothing changed since is lost.

        Returns:
            True if the profile was recovered by this call
        """
        stored = self._load(profile_id)
        if stored is None:
            return False

        prefs = stored
        for transition, topic in state.held_changes:
            prefs = transition(prefs, topic)

        logger.info(
            f"Recovered profile '{profile_id}' from store, "
            f"replayed {len(state.held_changes)} held changes"
        )
        state.prefs = prefs
        state.held_changes = []
        state.loaded = True
        return True

    def _mutate(
        self,
        profile_id: str,
        topic: TopicInput,
        transition: Transition
    ) -> PreferenceSet:
        if self._closed:
            raise RuntimeError("Preference registry is closed")

        # Validate before touching any state
        topic = Topic.parse(topic)
        state = self._state(profile_id)

        with state.write_lock:
            current = state.prefs
            recovered = not state.loaded and self._recover(profile_id, state)

            updated = transition(state.prefs, topic)
            if not state.loaded:
                state.held_changes.append((transition, topic))

            if updated == current and not recovered:
                logger.debug(f"No change for profile '{profile_id}' topic '{topic}'")
                return current

            state.prefs = updated
            state.version += 1
            version = state.version
            if state.loaded:
                self._schedule_save(profile_id, state, version, updated)
            else:
                logger.warning(
                    f"Holding change to '{profile_id}' in memory: "
                    f"{len(state.held_changes)} changes waiting for the store"
                )

            logger.debug(f"Profile '{profile_id}' now at version {version} after '{topic}'")
            # Listeners run under the writer lock so they see versions in order
            self._notify(profile_id, updated)

        return updated

    def _schedule_save(
        self,
        profile_id: str,
        state: _ProfileState,
        version: int,
        prefs: PreferenceSet
    ) -> None:
        future = self._executor.submit(self._save, profile_id, state, version, prefs)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _save(
        self,
        profile_id: str,
        state: _ProfileState,
        version: int,
        prefs: PreferenceSet
    ) -> bool:
        """
        Persist one snapshot. Runs on the save executor.

        Returns:
            True if the snapshot was written, False if superseded or failed
        """
        with state.save_lock:
            if version < state.version or version <= state.committed_version:
                logger.debug(
                    f"Skipping superseded save for '{profile_id}' "
                    f"(version {version}, latest {state.version})"
                )
                return False

            try:
                self.store.save(profile_id, prefs)
            except StoreUnavailable as e:
                state.last_save_error = e
                logger.warning(f"Save failed, keeping in-memory preferences: {e}")
                self._report_store_error(profile_id, e)
                return False

            state.committed_version = version
            state.last_save_error = None
            return True

    def _report_store_error(self, profile_id: str, error: StoreUnavailable) -> None:
        if self.on_store_error is None:
            return
        try:
            self.on_store_error(profile_id, error)
        except Exception as e:
            logger.error(f"Store error handler failed for '{profile_id}': {e}")

    def _notify(self, profile_id: str, prefs: PreferenceSet) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(profile_id, prefs)
            except Exception as e:
                logger.error(f"Preference listener failed for '{profile_id}': {e}")
