"""
Notification Registry — real-time job snapshots for subscribed observers.

  job_id ──► {observer, observer, ...}

The registry is constructed once at startup and handed to the real-time
endpoint. The store calls notify(job_id) after every job save; notify
schedules publish() as a background task and returns immediately, so a
processor never waits on slow observers.

Delivery is best-effort and at-most-once per publish: closed observers are
skipped, an observer whose send fails is dropped from every job. Publishes
for one job are serialised so observers see snapshots in save order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from pydantic import ValidationError as SchemaValidationError
from starlette.websockets import WebSocket, WebSocketState

from docpipe.schemas.jobs import JobSnapshot, SubscriptionMessage

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[str], Awaitable["JobSnapshot | None"]]


class Observer(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class WebSocketObserver:
    """Adapts a Starlette WebSocket to the Observer protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)


class NotificationRegistry:
    def __init__(self, loader: SnapshotLoader) -> None:
        self._loader = loader
        self._subscriptions: dict[str, set[Observer]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, job_id: str, observer: Observer) -> None:
        self._subscriptions.setdefault(job_id, set()).add(observer)
        logger.debug("Subscribed | job=%s observers=%d", job_id, len(self._subscriptions[job_id]))

    def unsubscribe(self, job_id: str, observer: Observer) -> None:
        observers = self._subscriptions.get(job_id)
        if observers is None:
            return
        observers.discard(observer)
        if not observers:
            self._forget(job_id)

    def on_disconnect(self, observer: Observer) -> None:
        for job_id in list(self._subscriptions):
            self.unsubscribe(job_id, observer)

    def observers(self, job_id: str) -> frozenset[Observer]:
        return frozenset(self._subscriptions.get(job_id, ()))

    @property
    def subscription_count(self) -> int:
        return sum(len(observers) for observers in self._subscriptions.values())

    def __len__(self) -> int:
        return len(self._subscriptions)

    def _forget(self, job_id: str) -> None:
        self._subscriptions.pop(job_id, None)
        lock = self._locks.get(job_id)
        if lock is not None and not lock.locked():
            del self._locks[job_id]

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def publish(self, job_id: str) -> int:
        """Send the current snapshot to every open observer. Returns deliveries."""
        if not self._subscriptions.get(job_id):
            return 0

        lock = self._locks.setdefault(job_id, asyncio.Lock())
        async with lock:
            try:
                return await self._send_snapshot(job_id)
            finally:
                # the last observer may have left while the lock was held
                if job_id not in self._subscriptions:
                    self._locks.pop(job_id, None)

    async def _send_snapshot(self, job_id: str) -> int:
        snapshot = await self._loader(job_id)
        if snapshot is None:
            return 0
        payload = snapshot.to_wire()

        delivered = 0
        for observer in list(self._subscriptions.get(job_id, ())):
            if not observer.is_open:
                continue
            try:
                await observer.send_text(payload)
                delivered += 1
            except Exception as exc:
                logger.warning("Send failed, dropping observer | job=%s error=%s", job_id, exc)
                self.on_disconnect(observer)
        return delivered

    def notify(self, job_id: str) -> None:
        """Store on-changed callback: schedule a publish and return at once."""
        task = asyncio.get_event_loop().create_task(self._publish_in_background(job_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish_in_background(self, job_id: str) -> None:
        try:
            await self.publish(job_id)
        except Exception:
            logger.exception("Publish failed | job=%s", job_id)

    async def drain(self) -> None:
        """Wait for every scheduled publish to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------------------------------------------------------------
    # Observer messages
    # ------------------------------------------------------------------

    def handle_message(self, observer: Observer, raw: str | bytes) -> SubscriptionMessage | None:
        try:
            message = SubscriptionMessage.model_validate_json(raw)
        except SchemaValidationError as exc:
            logger.warning("Ignoring malformed observer message | errors=%d", exc.error_count())
            return None

        if message.type == "subscribe":
            self.subscribe(message.job_id, observer)
        else:
            self.unsubscribe(message.job_id, observer)
        return message
