# signal_wizard/suggestions.py
"""
Entity Suggestion Search

Debounced lookups for the entities step. Keystrokes inside the debounce window
collapse into one request. Every dispatched request carries a generation token
and its response is dropped if a newer request has been issued since, so a
slow stale answer can never overwrite fresher suggestions in the draft.

Lookups are best-effort: failures are logged and leave the draft untouched.
"""

import logging
from typing import Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError

from .generations import Debouncer, RequestGenerations
from .models import EntityRef
from .store import SignalDraftStore

logger = logging.getLogger(__name__)

Suggester = Callable[[str, Optional[str]], Awaitable[List[EntityRef]]]


class SuggestionSearch:
    """Debounced, generation-checked entity suggestions written to ``draft.suggestions``."""

    def __init__(self, store: SignalDraftStore, suggest: Suggester, delay: float = 0.3):
        """
        Args:
            store: Draft store receiving suggestions
            suggest: Coroutine function calling the suggestion endpoint
            delay: Debounce window in seconds
        """
        self._store = store
        self._suggest = suggest
        self._debouncer = Debouncer(delay)
        self._generations = RequestGenerations()
        self.requests_sent = 0

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def on_input(self, text: str, title: Optional[str] = None) -> None:
        """Record a keystroke; the lookup fires once typing pauses."""
        query = text.strip()
        if not query:
            self._debouncer.cancel_pending()
            self._generations.invalidate()
            return
        self._debouncer.trigger(lambda: self._fetch(query, title))

    async def _fetch(self, query: str, title: Optional[str]) -> None:
        token = self._generations.issue()
        self.requests_sent += 1
        logger.debug(f"Suggestion request #{token} for {query!r}")

        try:
            entities = await self._suggest(query, title)
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning(f"⚠️ Entity suggestion lookup failed: {e}")
            return

        if not self._generations.is_current(token):
            logger.debug(f"Discarding stale suggestion response #{token}")
            return

        self._store.patch(suggestions=entities)

    def cancel(self) -> None:
        """Stop pending and in-flight lookups and ignore their results."""
        self._generations.invalidate()
        self._debouncer.close()

    async def wait(self) -> None:
        """Wait until no lookup is pending or running."""
        await self._debouncer.drain()
