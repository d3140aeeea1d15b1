import httpx

from carrental.core.config import settings


class NotifyWebhookError(Exception):
    pass


class NotifyWebhookClient:
    """Posts rendered notifications to an external delivery service (email/SMS gateway)."""

    def __init__(self, url: str | None = None, timeout: float | None = None):
        self.url = url or settings.NOTIFY_WEBHOOK_URL
        self.timeout = timeout or settings.NOTIFY_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def deliver(
        self,
        *,
        notification_id: int,
        user_id: int,
        kind: str,
        channel: str,
        title: str,
        message: str,
        meta: dict | None = None,
    ) -> dict:
        payload = {
            "notification_id": notification_id,
            "user_id": user_id,
            "kind": kind,
            "channel": channel,
            "title": title,
            "message": message,
            "meta": meta or {},
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(self.url, json=payload)

        if r.status_code >= 300:
            raise NotifyWebhookError(f"Notify webhook error {r.status_code}: {r.text}")

        return r.json() if r.content else {}
