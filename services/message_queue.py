# services/message_queue.py
# -*- coding: utf-8 -*-
"""
발신 메시지 큐 (triage.ports.MessageQueue 구현)

🎯 동작
--------------------------------------
- enqueue()       : pending 에 추가. urgent 메시지가 항상 앞에 온다. (같은 우선순위는 들어온 순서)
- process_batch() : 보낼 수 있는 메시지를 최대 batch_size 개 꺼내 transport.send() 호출
    - 성공 → completed (최근 100개만 보관)
    - 실패 → retry_count += 1
        - retry_count < max_retries : 대기 시간(60초 → 120초 → ... 최대 15분) 뒤 재시도
        - 그 외                     : failed 로 이동
- QueueWorker     : 백그라운드 스레드에서 process_batch 를 주기적으로 호출

엔진은 enqueue 만 하고 전송 결과를 기다리지 않는다.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from core.config import (
    OUTBOUND_BATCH_SIZE,
    OUTBOUND_POLL_SECONDS,
    OUTBOUND_RETRY_BASE_SECONDS,
    OUTBOUND_RETRY_MAX_SECONDS,
)
from core.logging import logger
from triage.models import OutboundMessage, utcnow

COMPLETED_KEEP = 100


class Transport(Protocol):
    def send(self, message: OutboundMessage) -> None:
        ...


def retry_delay(retry_count: int) -> float:
    delay = OUTBOUND_RETRY_BASE_SECONDS * (2 ** max(retry_count - 1, 0))
    return min(delay, OUTBOUND_RETRY_MAX_SECONDS)


class OutboundMessageQueue:
    def __init__(
        self,
        transport: Transport,
        batch_size: int = OUTBOUND_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.transport = transport
        self.batch_size = batch_size
        self.clock = clock
        self.pending: List[OutboundMessage] = []
        self.failed: List[OutboundMessage] = []
        self.completed: List[OutboundMessage] = []
        self._lock = threading.Lock()

    def enqueue(self, message: OutboundMessage) -> None:
        with self._lock:
            self.pending.append(message)
            # sort 는 안정 정렬이라 같은 우선순위 안에서는 FIFO 가 유지된다.
            self.pending.sort(key=lambda m: 0 if m.priority == "urgent" else 1)
        logger.info(
            "[queue] enqueued %s for %s via %s (%s)",
            message.id, message.recipient, message.channel, message.priority,
        )

    def process_batch(self) -> Dict[str, int]:
        now = self.clock()
        with self._lock:
            ready = [m for m in self.pending if m.scheduled_at is None or m.scheduled_at <= now]
            batch = ready[: self.batch_size]
            for m in batch:
                self.pending.remove(m)

        result = {"sent": 0, "retrying": 0, "failed": 0}
        for message in batch:
            try:
                self.transport.send(message)
            except Exception as e:
                result[self._handle_failure(message, str(e), now)] += 1
                continue

            message.scheduled_at = None
            with self._lock:
                self.completed.append(message)
                del self.completed[:-COMPLETED_KEEP]
            result["sent"] += 1

        if batch:
            logger.info("[queue] processed batch: %s", result)
        return result

    def _handle_failure(self, message: OutboundMessage, error: str, now: datetime) -> str:
        message.retry_count += 1
        message.last_error = error

        with self._lock:
            if message.retry_count < message.max_retries:
                delay = retry_delay(message.retry_count)
                message.scheduled_at = now + timedelta(seconds=delay)
                self.pending.append(message)
                self.pending.sort(key=lambda m: 0 if m.priority == "urgent" else 1)
                logger.warning(
                    "[queue] retry %d/%d for %s in %.0fs: %s",
                    message.retry_count, message.max_retries, message.id, delay, error,
                )
                return "retrying"

            self.failed.append(message)

        logger.error(
            "[queue] %s failed permanently after %d retries: %s",
            message.id, message.retry_count, error,
        )
        return "failed"

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "pending": len(self.pending),
                "failed": len(self.failed),
                "completed": len(self.completed),
            }


class QueueWorker:
    """process_batch 를 interval 초마다 호출하는 백그라운드 스레드."""

    def __init__(self, queue: OutboundMessageQueue, interval: float = OUTBOUND_POLL_SECONDS):
        self.queue = queue
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="outbound-queue", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.queue.process_batch()
            except Exception:
                logger.exception("[queue] batch processing failed")
