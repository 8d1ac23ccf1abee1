import threading

import pytest

from triage.errors import ConversationNotFoundError
from triage.models import InboundCallEvent
from triage.responder import CALLBACK_DELAYS, ResponseGenerator


def _start(ctx, phone="+359888123456", channel="whatsapp"):
    result = ctx.engine.start_conversation(
        InboundCallEvent(phone_number=phone, preferred_channel=channel)
    )
    assert result["success"] is True
    return result


def test_missed_call_sends_greeting(engine_ctx):
    result = _start(engine_ctx, channel="telegram")
    conv = result["conversation"]

    assert result["created"] is True
    assert result["initial_message"].startswith("Здравейте!")
    assert conv.channel == "telegram"
    assert conv.state == "AWAITING_DESCRIPTION"
    assert conv.status == "waiting_response"
    # 가상의 "부재중 전화" 메시지는 기록하지 않는다.
    assert [m.sender for m in conv.messages] == ["agent"]

    queued = engine_ctx.queue.pending
    assert len(queued) == 1
    assert queued[0].recipient == "+359888123456"
    assert queued[0].channel == "telegram"
    assert queued[0].priority == "normal"


def test_unknown_channel_defaults_to_whatsapp(engine_ctx):
    conv = _start(engine_ctx, channel="pager")["conversation"]
    assert conv.channel == "whatsapp"


def test_second_missed_call_does_not_greet_again(engine_ctx):
    first = _start(engine_ctx)
    second = _start(engine_ctx)

    assert second["created"] is False
    assert second["initial_message"] is None
    assert second["conversation"].id == first["conversation"].id
    assert len(engine_ctx.queue.pending) == 1


def test_outlet_problem_leads_to_follow_up_questions(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    result = engine_ctx.engine.process_incoming_message(
        conv_id, "Здравейте, имам проблем с контакта в кухнята"
    )

    assert result["success"] is True
    assert result["conversation"].state == "FOLLOW_UP_QUESTIONS"
    assert result["analysis"].problem_type == "electrical_outlet"
    assert result["analysis"].extracted_info.location == "кухня"
    assert result["response"].category == "question"
    assert result["complete"] is False
    assert result["escalated"] is False


def test_sparking_outlet_escalates_once(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    result = engine_ctx.engine.process_incoming_message(conv_id, "Контактът в хола искри")

    conv = result["conversation"]
    assert result["escalated"] is True
    assert conv.state == "COMPLETED"
    assert conv.status == "escalated"
    assert result["response"].category == "advice"
    assert result["reply"].startswith("🚨")

    assert len(engine_ctx.escalations.records) == 1
    record = engine_ctx.escalations.records[0]
    assert record.phone_number == "+359888123456"
    assert record.priority == "urgent"

    assert [kind for kind, _, _ in engine_ctx.actions.records] == ["create_task"]

    # urgent 메시지가 큐 맨 앞
    assert engine_ctx.queue.pending[0].priority == "urgent"
    assert engine_ctx.queue.pending[0].text == result["reply"]


def test_three_turns_complete_with_callback_reminder(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    engine = engine_ctx.engine

    engine.process_incoming_message(conv_id, "Здравейте, имам проблем с контакта в кухнята")
    second = engine.process_incoming_message(conv_id, "Контактът спря и не работи")
    assert second["conversation"].state == "GATHERING_DETAILS"
    assert second["complete"] is False

    third = engine.process_incoming_message(conv_id, "Може да дойдете тази седмица")
    conv = third["conversation"]
    assert third["complete"] is True
    assert conv.state == "COMPLETED"
    assert conv.status == "completed"
    assert third["analysis"].urgency_level == "medium"
    assert third["analysis"].ready_for_callback is True
    assert third["response"].category == "completion"

    # 요약(60초) 먼저, 리마인더(2시간) 나중
    assert engine_ctx.scheduler.advance(60) == 1
    assert [kind for kind, _, _ in engine_ctx.actions.records] == ["send_summary"]
    assert engine_ctx.scheduler.advance(7200) == 1
    assert [kind for kind, _, _ in engine_ctx.actions.records] == ["send_summary", "set_reminder"]

    # 시작 인사 + 고객 3턴 = 4개의 발신 메시지
    assert len(engine_ctx.queue.pending) == 4


def test_unclear_reply_asks_for_more_details(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    result = engine_ctx.engine.process_incoming_message(conv_id, "Ммм хмм")

    conv = result["conversation"]
    assert conv.state == "GATHERING_DETAILS"
    assert conv.status == "active"
    assert conv.messages[-2].intent.name == "clarification"
    assert result["response"].category == "question"
    assert result["reply"]


def test_closed_conversation_rejects_without_outbound(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    engine_ctx.engine.close_conversation(conv_id)
    queued_before = len(engine_ctx.queue.pending)

    result = engine_ctx.engine.process_incoming_message(conv_id, "Още нещо")

    assert result["success"] is False
    assert result["rejected"] is True
    assert result["status"] == "closed"
    assert result["reply"] is None
    assert len(engine_ctx.queue.pending) == queued_before


def test_completed_conversation_rejects_further_messages(engine_ctx):
    conv_id = _start(engine_ctx)["conversation"].id
    engine_ctx.engine.process_incoming_message(conv_id, "Контактът в хола искри")

    result = engine_ctx.engine.process_incoming_message(conv_id, "Какво да правя?")
    assert result["success"] is False
    assert result["status"] == "escalated"


def test_scheduled_actions_are_skipped_after_close(engine_ctx):
    engine = engine_ctx.engine
    conv_id = _start(engine_ctx)["conversation"].id
    engine.process_incoming_message(conv_id, "Имам проблем с контакта в кухнята")
    engine.process_incoming_message(conv_id, "Контактът спря и не работи")
    engine.process_incoming_message(conv_id, "Може да дойдете тази седмица")

    engine.close_conversation(conv_id)
    engine_ctx.scheduler.advance(24 * 60 * 60)

    assert engine_ctx.actions.records == []


def test_conversation_analysis_and_stats(engine_ctx):
    engine = engine_ctx.engine
    conv_id = _start(engine_ctx)["conversation"].id
    engine.process_incoming_message(conv_id, "Тече вода в банята")

    result = engine.get_conversation_analysis(conv_id)
    assert result["analysis"].problem_type == "plumbing_leak"
    assert result["risk_level"] == "medium"
    assert result["next_steps"]

    stats = engine.stats()
    assert stats["total"] == 1
    assert stats["active"] == 1
    assert [c.id for c in engine.list_active()] == [conv_id]


def test_analysis_of_unknown_conversation_raises(engine_ctx):
    with pytest.raises(ConversationNotFoundError):
        engine_ctx.engine.get_conversation_analysis("missing")


def test_heating_smell_goes_through_advice_and_scheduling(engine_ctx):
    engine = engine_ctx.engine
    conv_id = _start(engine_ctx)["conversation"].id

    first = engine.process_incoming_message(conv_id, "Имам проблем, вкъщи не е топло")
    assert first["conversation"].state == "FOLLOW_UP_QUESTIONS"
    assert first["analysis"].problem_type == "hvac_heating"

    advice = engine.process_incoming_message(conv_id, "И мирише на газ")
    assert advice["conversation"].state == "PROVIDING_ADVICE"
    assert advice["analysis"].risk_assessment.level == "high"
    assert advice["response"].category == "advice"
    assert advice["escalated"] is False

    scheduling = engine.process_incoming_message(conv_id, "Добре")
    assert scheduling["conversation"].state == "SCHEDULING_VISIT"
    assert scheduling["response"].category == "scheduling"

    done = engine.process_incoming_message(conv_id, "Утре сутрин е удобно")
    assert done["complete"] is True
    assert (done["conversation"].state, done["conversation"].status) == ("COMPLETED", "completed")
    assert done["response"].category == "completion"

    reminder = next(a for a in done["response"].follow_up_actions if a.type == "set_reminder")
    assert reminder.delay == CALLBACK_DELAYS["high"]
    assert engine_ctx.escalations.records == []


class GatedGenerator(ResponseGenerator):
    """첫 generate 호출을 release 가 풀릴 때까지 붙잡아 둔다."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def generate(self, *args, **kwargs):
        if not self.entered.is_set():
            self.entered.set()
            self.release.wait(5)
        return super().generate(*args, **kwargs)


def test_overlapping_turns_on_one_conversation_run_one_after_another(engine_ctx):
    engine = engine_ctx.engine
    conv_id = _start(engine_ctx)["conversation"].id
    gate = GatedGenerator()
    engine.generator = gate

    results = {}

    def send(name, text):
        results[name] = engine.process_incoming_message(conv_id, text)

    first = threading.Thread(target=send, args=("first", "Имам проблем с контакта в кухнята"))
    first.start()
    assert gate.entered.wait(5)

    second = threading.Thread(target=send, args=("second", "Контактът искри"))
    second.start()
    second.join(0.2)
    # 첫 턴이 응답을 기록할 때까지 두 번째 턴은 기다린다.
    assert second.is_alive()

    gate.release.set()
    first.join(5)
    second.join(5)

    assert results["first"]["conversation"].state == "FOLLOW_UP_QUESTIONS"
    assert results["second"]["escalated"] is True

    conv = engine.get_conversation(conv_id)
    assert (conv.state, conv.status) == ("COMPLETED", "escalated")
    assert [m.sender for m in conv.messages] == ["agent", "customer", "agent", "customer", "agent"]
    assert len(engine_ctx.escalations.records) == 1
