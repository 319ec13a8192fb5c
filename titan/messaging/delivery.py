# =============================================================================
# File: titan/messaging/delivery.py
# Description: The single send path for optimistic messages - uploads,
#              persistence, confirmation, failure and delivery acks
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from titan.common.exceptions.exceptions import NotFoundError, TitanException, TransportError
from titan.config.messaging_config import MessagingConfig, get_messaging_config
from titan.core.background_tasks import BackgroundTasks
from titan.infra.metrics.messaging_metrics import messages_sent
from titan.messaging.failures import FailureReporter
from titan.messaging.message_store import MessageStore
from titan.messaging.models import Message
from titan.messaging.ports.persistence_port import MessagePersistencePort
from titan.messaging.records import MessageEnvelope, SendResult
from titan.messaging.value_objects import Attachment, FileUpload

log = logging.getLogger("titan.messaging.delivery")


class DeliveryPipeline:
    """
    Sends optimistic messages in the background.

    Used by actor sends, forwards, retries and system messages alike, so
    every message ends up either confirmed or marked failed.
    """

    def __init__(
            self,
            store: MessageStore,
            persistence: MessagePersistencePort,
            tasks: BackgroundTasks,
            failures: Optional[FailureReporter] = None,
            config: Optional[MessagingConfig] = None,
    ):
        self._store = store
        self._persistence = persistence
        self._tasks = tasks
        self._failures = failures or FailureReporter()
        self.config = config or get_messaging_config()
        # temp id -> blobs, kept until the send succeeds so a retry can re-upload
        self._uploads: Dict[str, List[FileUpload]] = {}

    def pending_uploads(self, temp_id: str) -> List[FileUpload]:
        return list(self._uploads.get(temp_id, []))

    def submit(self, message: Message, uploads: Optional[List[FileUpload]] = None) -> asyncio.Task:
        """Schedule persistence of an optimistic message"""
        if uploads:
            self._uploads[message.id] = list(uploads)
        return self._tasks.spawn(self._deliver(message.id), name=f"deliver-{message.id}")

    def retry(self, temp_id: str) -> Message:
        """Re-send a failed message under a new temp id, re-using its uploads"""
        uploads = self._uploads.get(temp_id)
        message = self._store.retry(temp_id)
        self._uploads.pop(temp_id, None)
        self.submit(message, uploads)
        log.info(f"Retrying message {temp_id} as {message.id}")
        return message

    def acknowledge(self, message_id: str) -> bool:
        """Delivery ack for a confirmed message"""
        try:
            return self._store.mark_delivered(message_id)
        except NotFoundError:
            log.debug(f"Ack for unknown message {message_id} ignored")
            return False

    # =========================================================================
    # Background work
    # =========================================================================

    async def _deliver(self, temp_id: str) -> Optional[str]:
        message = self._store.find(temp_id)
        if message is None:
            return None

        try:
            uploads = self._uploads.get(temp_id)
            if uploads:
                message.attachments = await self._upload_all(message, uploads)
            result = await self._persist(message)
        except TransportError as e:
            self._fail(message, temp_id, e)
            return None

        try:
            confirmed = self._store.confirm_send(temp_id, result.id)
        except NotFoundError:
            # Channel purged while the send was in flight
            log.debug(f"Confirmed message {temp_id} no longer loaded")
            return result.id
        self._uploads.pop(temp_id, None)
        messages_sent.labels(result="confirmed").inc()

        if self.config.simulate_delivery_ack:
            await asyncio.sleep(self.config.delivery_ack_delay_ms / 1000)
            self.acknowledge(confirmed.id)
        return result.id

    async def _persist(self, message: Message) -> SendResult:
        forwarded = message.forwarded_from
        if forwarded is not None:
            return await self._persistence.forward_message(
                forwarded.message_id,
                message.channel_id,
                message.sender,
                forwarded.channel_name,
            )
        return await self._persistence.send_message(MessageEnvelope.from_message(message))

    async def _upload_all(self, message: Message, uploads: List[FileUpload]) -> List[Attachment]:
        pending = list(message.attachments)
        uploaded = []
        for index, upload in enumerate(uploads):
            stored = await self._persistence.upload_file(upload, message.channel_id)
            placeholder = pending[index] if index < len(pending) else upload.to_pending_attachment()
            uploaded.append(placeholder.model_copy(update={
                "url": stored.url,
                "name": stored.name,
                "mime_type": stored.mime_type,
                "size": stored.size or placeholder.size,
            }))
        return uploaded

    def _fail(self, message: Message, temp_id: str, error: TransportError) -> None:
        messages_sent.labels(result="failed").inc()
        try:
            self._store.fail_send(temp_id, str(error))
        except TitanException as e:
            log.warning(f"Could not mark {temp_id} failed: {e}")
        self._failures.report(
            "send",
            error,
            message_id=temp_id,
            channel_id=message.channel_id,
            actor_id=message.sender.id,
        )
