# services/scheduler.py
# -*- coding: utf-8 -*-
"""
지연 작업 스케줄러 (triage.ports.Scheduler 구현)

- ThreadingScheduler : threading.Timer 로 delay 초 뒤 실행 (서버용)
- ManualScheduler    : 시간을 직접 흘려 보내는 스케줄러 (테스트/데모용)

작업이 실패해도 스케줄러 스레드는 죽지 않고 로그만 남긴다.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Tuple

from core.logging import logger

Task = Callable[[], None]


def _run_safely(task: Task) -> None:
    try:
        task()
    except Exception:
        logger.exception("[scheduler] scheduled task failed")


class ThreadingScheduler:
    def schedule(self, delay: float, task: Task) -> None:
        timer = threading.Timer(max(delay, 0), _run_safely, args=(task,))
        timer.daemon = True
        timer.start()


class ManualScheduler:
    """
    advance(seconds) 를 호출해야 시간이 흐른다.
    실행 시각이 같은 작업은 등록된 순서대로 실행한다.
    """

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._tasks: List[Tuple[float, int, Task]] = []

    def schedule(self, delay: float, task: Task) -> None:
        self._seq += 1
        self._tasks.append((self.now + max(delay, 0), self._seq, task))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def advance(self, seconds: float) -> int:
        """seconds 만큼 시간을 흘리고, 그 사이 실행된 작업 수를 돌려준다."""
        self.now += seconds
        due = sorted(t for t in self._tasks if t[0] <= self.now)
        self._tasks = [t for t in self._tasks if t[0] > self.now]
        for _, _, task in due:
            _run_safely(task)
        return len(due)
