# signal_wizard/store.py
"""
Signal Draft Store

The single container for the in-progress signal. Step controllers write to it
through ``patch``; everything else reads through ``get`` or ``subscribe``.

Features:
- Synchronous, ordered writes (a listener that patches during notification is rejected)
- Deep-copied reads, so callers cannot mutate the stored draft
- Subscription-based change delivery
- Step errors that clear themselves once their condition is resolved

Usage:
    store = SignalDraftStore()
    unsubscribe = store.subscribe(lambda draft: render(draft))

    store.patch({"raw_query": "mentions of Acme"})
    store.set_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)

    unsubscribe()
    store.reset()
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .errors import ErrorKind, StoreReentrancyError
from .models import SignalDraft, StepId

logger = logging.getLogger(__name__)

Listener = Callable[[SignalDraft], None]
Check = Callable[[SignalDraft], Optional[ErrorKind]]


@dataclass
class ErrorResolver:
    """Clears a step's error once ``check`` stops reporting a problem."""
    step: StepId
    check: Check
    managed: FrozenSet[ErrorKind]


class SignalDraftStore:
    """
    Mutable holder of the current SignalDraft.

    Every write replaces the stored draft with a freshly validated copy, so
    model validators (entity de-duplication, the implicit dashboard method)
    hold after every patch.
    """

    def __init__(self, draft: Optional[SignalDraft] = None):
        self._draft = draft.model_copy(deep=True) if draft else SignalDraft()
        self._listeners: Dict[int, Listener] = {}
        self._next_listener_id = 0
        self._resolvers: List[ErrorResolver] = []
        self._notifying = False
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every write."""
        return self._version

    def get(self) -> SignalDraft:
        """Return a deep copy of the current draft."""
        return self._draft.model_copy(deep=True)

    def patch(self, partial: Optional[Dict[str, Any]] = None, **fields: Any) -> SignalDraft:
        """
        Apply a partial update and notify subscribers.

        Raises:
            ValueError: for unknown draft fields or values that fail validation
            StoreReentrancyError: when called while subscribers are being notified
        """
        updates = dict(partial or {}, **fields)
        unknown = set(updates) - set(SignalDraft.model_fields)
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")

        merged = {**self._draft.model_dump(), **updates}
        draft = SignalDraft.model_validate(merged).model_copy(deep=True)
        return self._commit(draft)

    def reset(self) -> SignalDraft:
        """Discard the draft and start over empty."""
        logger.debug("Resetting signal draft")
        return self._commit(SignalDraft())

    def replace(self, draft: SignalDraft) -> SignalDraft:
        """Swap in a whole draft, e.g. one rebuilt from a persisted signal."""
        return self._commit(SignalDraft.model_validate(draft.model_dump()))

    # -------------------------------------------------------------------------
    # Step errors
    # -------------------------------------------------------------------------

    def set_error(self, step: StepId, kind: ErrorKind) -> SignalDraft:
        errors = dict(self._draft.validation_errors)
        errors[step] = kind
        return self.patch(validation_errors=errors)

    def clear_error(self, step: StepId, kind: Optional[ErrorKind] = None) -> SignalDraft:
        """Remove the error on ``step``; with ``kind``, only if it is that kind."""
        current = self._draft.validation_errors.get(step)
        if current is None or (kind is not None and current is not kind):
            return self.get()
        errors = dict(self._draft.validation_errors)
        del errors[step]
        return self.patch(validation_errors=errors)

    def register_resolver(self, step: StepId, check: Check, managed: FrozenSet[ErrorKind]) -> None:
        self._resolvers.append(ErrorResolver(step=step, check=check, managed=frozenset(managed)))

    def _resolve_errors(self, draft: SignalDraft) -> None:
        errors = draft.validation_errors
        for resolver in self._resolvers:
            kind = errors.get(resolver.step)
            if kind in resolver.managed and resolver.check(draft) is None:
                logger.debug(f"Cleared resolved {kind.value} on {resolver.step.value}")
                del errors[resolver.step]

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns a callable that removes the subscription.
        """
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _commit(self, draft: SignalDraft) -> SignalDraft:
        if self._notifying:
            raise StoreReentrancyError("Cannot patch the draft while subscribers are being notified")

        self._resolve_errors(draft)
        self._draft = draft
        self._version += 1

        # A listener that patches gets StoreReentrancyError; the outer write stands
        # and the remaining listeners still see it.
        self._notifying = True
        try:
            for listener in list(self._listeners.values()):
                try:
                    listener(self.get())
                except StoreReentrancyError as e:
                    logger.error(f"Draft listener rejected: {e}")
                except Exception as e:
                    logger.error(f"Draft listener failed: {e}")
        finally:
            self._notifying = False

        return self.get()
