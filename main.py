# -*- coding: utf-8 -*-
"""
main.py

부재중 전화 자동 진단 엔진의 콘솔 데모 진입점입니다.

🎯 역할 요약
--------------------------------------
1. 전화번호를 입력받아 "부재중 전화" 이벤트를 만든다.
2. 엔진이 보낸 첫 인사 메시지를 출력한다.
3. 콘솔에서 고객 메시지를 입력받아
   - 엔진 응답
   - 대화 상태(state / status)
   - 진단 결과(문제 유형 / 긴급도 / 위험도 / 콜백 준비 여부)
   를 출력한다.
4. 대화가 완료/에스컬레이션되면 예약된 후속 작업을 바로 실행해 보여준다.

👉 실제 서비스에서는 app_fastapi.py 의 HTTP API 를 사용합니다.
"""

import json
import sys

from services.delivery import LoggingChannel
from services.message_queue import OutboundMessageQueue
from services.notifications import LoggingActionSink, LoggingEscalationNotifier
from services.scheduler import ManualScheduler
from triage import build_engine
from triage.models import InboundCallEvent


def print_analysis(analysis) -> None:
    risk = analysis.risk_assessment
    print("\n[진단]")
    print(" - 문제 유형:", analysis.problem_type, f"({analysis.problem_category})")
    print(" - 긴급도:", analysis.urgency_level)
    print(" - 위험도:", risk.level)
    print(" - 위치:", analysis.extracted_info.location or "-")
    print(" - 증상:", ", ".join(analysis.extracted_info.symptoms) or "-")
    print(" - 콜백 준비:", analysis.ready_for_callback)
    if analysis.estimated_cost:
        print(f" - 예상 비용: {analysis.estimated_cost.min}-{analysis.estimated_cost.max} лв.")


def run_console_mode() -> None:
    scheduler = ManualScheduler()
    escalations = LoggingEscalationNotifier()
    actions = LoggingActionSink()
    queue = OutboundMessageQueue(LoggingChannel())
    engine = build_engine(
        queue=queue,
        scheduler=scheduler,
        escalations=escalations,
        actions=actions,
    )

    print("\n[데모] 부재중 전화 자동 진단 (exit 로 종료)")
    try:
        phone = input("전화번호 > ").strip() or "+359888000111"
    except (EOFError, KeyboardInterrupt):
        print("\n종료합니다.")
        return

    started = engine.start_conversation(InboundCallEvent(phone_number=phone))
    conversation = started["conversation"]
    print(f"\n[대화 시작] {conversation.id}")
    print("[봇]", started["initial_message"])

    while True:
        try:
            text = input("\n고객 > ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\n종료합니다.")
            break

        if text.lower() in ("exit", "quit"):
            print("종료합니다.")
            break
        if not text:
            continue

        result = engine.process_incoming_message(conversation.id, text)
        if not result["success"]:
            print(f"[거절] 이미 종료된 대화입니다. (status={result['status']})")
            break

        conv = result["conversation"]
        print("\n[봇]")
        print(result["reply"])
        print(f"\n[상태] {conv.state} / {conv.status}")
        print_analysis(result["analysis"])

        if result["complete"] or result["escalated"]:
            # 예약된 리마인더/요약을 바로 실행
            scheduler.advance(24 * 60 * 60)
            break

    queue.process_batch()

    print("\n[후속 작업]")
    for kind, _, payload in actions.records:
        print(f" - {kind}: {json.dumps(payload, ensure_ascii=False, default=str)[:120]}")
    for record in escalations.records:
        print(f" - escalation: {record.reason}")

    print("\n[통계]", engine.stats())


if __name__ == "__main__":
    try:
        run_console_mode()
    except KeyboardInterrupt:
        sys.exit(0)
