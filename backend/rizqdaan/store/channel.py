from __future__ import annotations

import logging
from typing import Callable

from blinker import Namespace

logger = logging.getLogger(__name__)

WALLET_UPDATED = "wallet_updated"
LISTINGS_UPDATED = "listings_updated"
CAMPAIGNS_UPDATED = "campaigns_updated"
SETTINGS_UPDATED = "settings_updated"
FINANCE_UPDATED = "finance_updated"

TOPICS = (WALLET_UPDATED, LISTINGS_UPDATED, CAMPAIGNS_UPDATED, SETTINGS_UPDATED, FINANCE_UPDATED)


class ChangeChannel:
    """Per-application pub-sub for "state changed, re-merge your view" signals.

    Each app owns its own blinker namespace so two apps in one process (tests)
    never see each other's signals.
    """

    def __init__(self):
        self._namespace = Namespace()
        self._signals = {topic: self._namespace.signal(topic) for topic in TOPICS}

    def _signal(self, topic: str):
        if topic not in self._signals:
            raise KeyError(f"unknown topic: {topic}")
        return self._signals[topic]

    def subscribe(self, topic: str, handler: Callable[..., None]) -> Callable[[], None]:
        """Connect ``handler(topic, **payload)``; returns an unsubscribe callable."""
        signal = self._signal(topic)
        signal.connect(handler, weak=False)

        def _unsubscribe() -> None:
            signal.disconnect(handler)

        return _unsubscribe

    def emit(self, topic: str, **payload) -> int:
        signal = self._signal(topic)
        delivered = 0
        for receiver in list(signal.receivers_for(topic)):
            try:
                receiver(topic, **payload)
                delivered += 1
            except Exception as e:
                logger.warning("change_channel_receiver_failed topic=%s err=%s", topic, e)
        return delivered
