# signal_wizard/submission.py
"""
Signal Submission

Converts a finished draft into the persistence payload and saves it.
New signals are created with POST; drafts in edit mode update their signal with PUT.
"""

import logging
from typing import Optional

import httpx

from .client import SignalsClient
from .errors import SubmissionFailedError
from .filter_mapper import to_structured_query
from .models import (
    NotificationPolicy,
    SelectionPolicy,
    SignalDraft,
    SignalPayload,
)
from .steps import anomaly_enabled

logger = logging.getLogger(__name__)


def build_payload(draft: SignalDraft) -> SignalPayload:
    """
    Build the request body for a draft.

    Settings the draft's policies make irrelevant are left out: the schedule
    for immediate signals and anomaly thresholds when selection does not use
    volume data.
    """
    schedule = None
    if draft.notification_policy is not NotificationPolicy.IMMEDIATE:
        schedule = draft.schedule_policy

    return SignalPayload(
        name=draft.name,
        query=draft.raw_query.strip(),
        enhanced_query=draft.enhanced_query,
        workflow=draft.workflow,
        template_id=draft.template_id,
        entities=draft.entities,
        filters=to_structured_query(draft.filters),
        anomaly_config=draft.anomaly_config if anomaly_enabled(draft) else None,
        notification_policy=draft.notification_policy,
        selection_policy=draft.selection_policy or SelectionPolicy.ALL_MATCHES,
        selection_config=draft.selection_config,
        schedule_policy=schedule,
        delivery_methods=draft.delivery_methods,
    )


class SignalSubmitter:
    """Saves drafts through the signals API."""

    def __init__(self, signals: SignalsClient):
        self._signals = signals

    async def submit(self, draft: SignalDraft) -> str:
        """
        Create or update the signal; returns its ID.

        Raises:
            SubmissionFailedError: the backend rejected the request or was unreachable
        """
        payload = build_payload(draft)
        signal_id: Optional[str] = draft.signal_id if draft.is_edit_mode else None
        if signal_id and not draft.has_filter_changes:
            logger.debug(f"Filters of signal {signal_id} unchanged since load")

        try:
            if signal_id:
                saved_id = await self._signals.update(signal_id, payload)
            else:
                saved_id = await self._signals.create(payload)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Failed to save signal: {e}")
            raise SubmissionFailedError(f"Failed to save signal: {e}") from e

        logger.info(f"{'Updated' if signal_id else 'Created'} signal {saved_id}")
        return saved_id
