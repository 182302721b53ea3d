from __future__ import annotations

import asyncio
import logging

import httpx

from bookscan.core.config import Settings
from bookscan.domain.models import ScanFeedback

logger = logging.getLogger(__name__)

_TITLES = {
    ScanFeedback.NEW: "New book",
    ScanFeedback.DUPLICATE: "Duplicate scan",
}


class FeedbackNotifier:
    """Forwards scan feedback to a webhook (ntfy / gotify) for devices that beep or buzz."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http_client = http_client
        self._settings = settings
        self._tasks: set[asyncio.Task[None]] = set()

    def notify(self, identifier: str, feedback: ScanFeedback) -> None:
        """Sends the feedback signal using the configured webhook (fire-and-forget)."""
        if not self._settings.feedback_webhook_enabled or not self._settings.feedback_webhook_url:
            return

        task = asyncio.create_task(self._perform_send(identifier, feedback))
        # Referenz halten, sonst kann der Task vorzeitig eingesammelt werden
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _perform_send(self, identifier: str, feedback: ScanFeedback) -> None:
        """Internal method to perform the actual HTTP call."""
        url = self._settings.feedback_webhook_url
        if not url:
            return

        title = _TITLES[feedback]
        try:
            if "ntfy.sh" in url:
                # ntfy style: POST {url} with text body and Title header
                await self._http_client.post(
                    url,
                    content=identifier,
                    headers={"Title": title, "Tags": feedback.value},
                    timeout=10.0,
                )
            else:
                # Gotify style (fallback): POST {url}/message with JSON body
                base_url = url.rstrip("/")
                await self._http_client.post(
                    f"{base_url}/message",
                    json={
                        "title": title,
                        "message": identifier,
                        "priority": 5 if feedback is ScanFeedback.DUPLICATE else 3,
                        "extras": {"bookscan::feedback": feedback.value},
                    },
                    timeout=10.0,
                )
        except Exception:
            logger.exception("Failed to send scan feedback to %s", url)
