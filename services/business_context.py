# services/business_context.py
# -*- coding: utf-8 -*-
"""
사업자(기술자) 정보 제공 (triage.ports.BusinessContextProvider 구현)

.env 설정값(BUSINESS_*)으로 BusinessContext 를 만들고,
working_hours("08:00 - 18:00") 와 현재 시각을 비교해 영업시간 여부를 계산한다.
"""

from __future__ import annotations

import re
from datetime import datetime, time
from typing import Callable, Optional, Tuple

from core.config import (
    BUSINESS_AGENT_NAME,
    BUSINESS_EMERGENCY_CONTACT,
    BUSINESS_EXPERIENCE_YEARS,
    BUSINESS_PROFESSION,
    BUSINESS_WORKING_HOURS,
)
from core.logging import logger
from triage.models import BusinessContext

_HOURS_RE = re.compile(r"(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})")


def parse_working_hours(text: str) -> Optional[Tuple[time, time]]:
    m = _HOURS_RE.search(text or "")
    if not m:
        return None
    h1, m1, h2, m2 = (int(g) for g in m.groups())
    try:
        return time(h1, m1), time(h2, m2)
    except ValueError:
        return None


def is_within(hours: Optional[Tuple[time, time]], now: datetime) -> bool:
    # 형식을 알 수 없으면 영업시간으로 본다.
    if hours is None:
        return True
    start, end = hours
    current = now.time()
    if start <= end:
        return start <= current < end
    # 자정을 넘기는 경우 (예: 20:00 - 02:00)
    return current >= start or current < end


class ConfigBusinessContextProvider:
    def __init__(
        self,
        agent_name: str = BUSINESS_AGENT_NAME,
        profession: str = BUSINESS_PROFESSION,
        experience_years: str = BUSINESS_EXPERIENCE_YEARS,
        working_hours: str = BUSINESS_WORKING_HOURS,
        emergency_contact: str = BUSINESS_EMERGENCY_CONTACT,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.agent_name = agent_name
        self.profession = profession
        self.experience_years = experience_years
        self.working_hours = working_hours
        self.emergency_contact = emergency_contact
        self.clock = clock
        self._hours = parse_working_hours(working_hours)
        if self._hours is None:
            logger.warning("[business] cannot parse working hours %r", working_hours)

    def get_context(self) -> BusinessContext:
        return BusinessContext(
            agent_name=self.agent_name,
            profession=self.profession,
            experience_years=self.experience_years,
            working_hours=self.working_hours,
            emergency_contact=self.emergency_contact,
            is_business_hours=is_within(self._hours, self.clock()),
        )
