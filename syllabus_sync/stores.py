"""
Subscribable snapshots of host data.

An :class:`ExternalStore` turns host change events into "something you
display may have changed" notifications. Consumers call
:meth:`ExternalStore.get_snapshot` to read a canonical JSON string and
:meth:`ExternalStore.subscribe` to hear about changes; equal data always
yields an equal string, so comparing snapshots is enough to skip redundant
work.

All subscribers of one store share a single notifier observer, a single
observer per preference key and, for stores that poll, a single polling
task. They are released when the last subscriber leaves.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
import typing as t

from syllabus_data.host import CallbackObserver, Notifier, PreferenceStore

logger = logging.getLogger(__name__)

Listener = t.Callable[[], None]
Unsubscribe = t.Callable[[], None]
EventFilter = t.Callable[[str, str, t.Sequence[t.Any], t.Mapping[str, t.Any]], bool]


def canonical_json(data: t.Any) -> str:
    """Serialise ``data`` so that equal values produce identical strings."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def accept_all(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
    return True


class ExternalStore:
    def __init__(
        self,
        scope_key: t.Hashable,
        compute_snapshot: t.Callable[[], t.Any],
        notifier: t.Optional[Notifier] = None,
        notifier_types: t.Sequence[str] = (),
        event_filter: EventFilter = accept_all,
        prefs: t.Optional[PreferenceStore] = None,
        pref_keys: t.Sequence[str] = (),
        poll_interval: t.Optional[float] = None,
    ) -> None:
        self.scope_key = scope_key
        self._compute = compute_snapshot
        self._notifier = notifier
        self._notifier_types = tuple(notifier_types)
        self._event_filter = event_filter
        self._prefs = prefs
        self._pref_keys = tuple(pref_keys)
        self.poll_interval = poll_interval

        self._listeners: dict[int, Listener] = {}
        self._tokens = itertools.count(1)
        self._snapshot: t.Optional[str] = None
        self._notifier_id: t.Optional[int] = None
        self._pref_observer_ids: list[int] = []
        self._poll_task: t.Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"ExternalStore({self.scope_key!r}, subscribers={self.subscriber_count})"

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def get_snapshot(self) -> str:
        """Return the current snapshot.

        While subscribed the snapshot is kept current by change events, so
        it is returned as is. Without subscribers it is recomputed on every
        call.
        """
        if self._snapshot is None or not self._listeners:
            self._snapshot = canonical_json(self._compute())
        return self._snapshot

    def refresh(self) -> bool:
        """Recompute the snapshot and notify subscribers if it changed."""
        snapshot = canonical_json(self._compute())
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception:
                logger.exception("Subscriber of %r failed", self.scope_key)
        return True

    def subscribe(self, on_change: Listener) -> Unsubscribe:
        """Register ``on_change``; returns an idempotent unsubscribe function."""
        token = next(self._tokens)
        if not self._listeners:
            self._snapshot = canonical_json(self._compute())
            self._attach()
        self._listeners[token] = on_change

        def unsubscribe() -> None:
            if self._listeners.pop(token, None) is not None and not self._listeners:
                self._detach()

        return unsubscribe

    def _attach(self) -> None:
        if self._notifier is not None and self._notifier_types:
            self._notifier_id = self._notifier.register_observer(
                CallbackObserver(self._on_notify), self._notifier_types
            )
        if self._prefs is not None:
            self._pref_observer_ids = [
                self._prefs.observe(key, lambda _value: self._refresh_from_host()) for key in self._pref_keys
            ]
        if self.poll_interval:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop, %r will not poll", self.scope_key)
            else:
                self._poll_task = loop.create_task(self._poll())

    def _detach(self) -> None:
        if self._notifier_id is not None and self._notifier is not None:
            self._notifier.unregister_observer(self._notifier_id)
            self._notifier_id = None
        if self._prefs is not None:
            for observer_id in self._pref_observer_ids:
                self._prefs.unobserve(observer_id)
        self._pref_observer_ids = []
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def _on_notify(self, event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> None:
        if self._event_filter(event, type, ids, extra_data):
            self._refresh_from_host()

    def _refresh_from_host(self) -> None:
        # Host callbacks and the polling task never see store errors
        try:
            self.refresh()
        except Exception:
            logger.exception("Refreshing %r failed", self.scope_key)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self._refresh_from_host()


def make_store(
    scope_key: t.Hashable,
    compute_snapshot: t.Callable[[], t.Any],
    event_filter: EventFilter = accept_all,
    **options: t.Any,
) -> ExternalStore:
    """Build a store; ``options`` are the remaining :class:`ExternalStore` arguments."""
    return ExternalStore(scope_key, compute_snapshot, event_filter=event_filter, **options)
