# signal_wizard/enhancement.py
"""
Query Enhancement Pipeline

Sends the user's free-text request to the NLP conversion service and stores
the structured query it returns.

- Blank input fails fast with EmptyQueryError; no request is made.
- Service failures attach EnhancementFailed to the query step and leave any
  previous enhanced query in place. Nothing is retried automatically.
- Only one enhancement runs at a time: a new submit cancels the one in flight,
  and the superseded caller receives RequestSupersededError.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from .errors import (
    EmptyQueryError,
    EnhancementFailedError,
    ErrorKind,
    QueryDepthError,
    RequestSupersededError,
)
from .generations import RequestGenerations
from .models import QueryNode, StepId, ensure_query_depth
from .store import SignalDraftStore

logger = logging.getLogger(__name__)

Enhancer = Callable[[str], Awaitable[QueryNode]]


class QueryEnhancementPipeline:
    """Serializes enhancement requests and writes results into the draft store."""

    def __init__(self, store: SignalDraftStore, enhance: Enhancer, max_depth: int = 10):
        """
        Args:
            store: Draft store receiving ``enhanced_query``
            enhance: Coroutine function calling the NLP service
            max_depth: Deepest structured query accepted from the service
        """
        self._store = store
        self._enhance = enhance
        self._max_depth = max_depth
        self._generations = RequestGenerations()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def submit(self, raw_query: str) -> QueryNode:
        """
        Enhance ``raw_query`` and store the result.

        Raises:
            EmptyQueryError: blank input
            EnhancementFailedError: the service failed or answered with an unusable query
            RequestSupersededError: a newer submit or cancel replaced this one
        """
        text = (raw_query or "").strip()
        if not text:
            self._store.set_error(StepId.QUERY, ErrorKind.EMPTY_QUERY)
            raise EmptyQueryError()

        if self.busy:
            logger.debug("Replacing in-flight enhancement request")
            self._inflight.cancel()

        token = self._generations.issue()
        task = asyncio.ensure_future(self._enhance(text))
        self._inflight = task

        try:
            result = await task
            ensure_query_depth(result, self._max_depth)
        except asyncio.CancelledError:
            if self._generations.is_current(token):
                # The caller itself was cancelled, not superseded.
                raise
            raise RequestSupersededError("Enhancement request was superseded")
        except (httpx.HTTPError, ValidationError, KeyError, ValueError, QueryDepthError) as e:
            if not self._generations.is_current(token):
                raise RequestSupersededError("Enhancement request was superseded") from e
            logger.warning(f"⚠️ Query enhancement failed: {e}")
            self._store.set_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)
            raise EnhancementFailedError() from e
        finally:
            if self._inflight is task:
                self._inflight = None

        if not self._generations.is_current(token):
            raise RequestSupersededError("Enhancement request was superseded")

        self._store.patch(enhanced_query=result)
        self._store.clear_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)
        self._store.clear_error(StepId.QUERY, ErrorKind.EMPTY_QUERY)
        logger.info(f"✅ Query enhanced ({len(result.children)} top-level clause(s))")
        return result

    def cancel(self) -> None:
        """Drop any in-flight request without raising."""
        self._generations.invalidate()
        if self.busy:
            self._inflight.cancel()
        self._inflight = None
