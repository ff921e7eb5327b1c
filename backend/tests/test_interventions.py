from datetime import timedelta

import pytest

from ace.interventions import InterventionNotifier, build_intervention
from ace.models import CurrentActivity, ProductivityInsights
from conftest import NOW


def make_insights(requires_intervention=True, is_unproductive=True, name="YouTube"):
    return ProductivityInsights(
        requires_intervention=requires_intervention,
        current_activity=CurrentActivity(name=name, is_unproductive=is_unproductive),
        time_spent="16m",
        recommended_activity="focused work session",
    )


def test_intervention_message():
    notification = build_intervention(make_insights())

    assert notification.type == "warning"
    assert notification.message == (
        "Noticed you've been on YouTube for 16m. Consider switching to focused work session?"
    )
    assert notification.action_label == "Switch Now"
    assert notification.recommended_activity == "focused work session"


@pytest.mark.parametrize("requires_intervention, is_unproductive", [
    (False, True),
    (True, False),
    (False, False),
])
def test_no_intervention_unless_needed_and_unproductive(requires_intervention, is_unproductive):
    assert build_intervention(make_insights(requires_intervention, is_unproductive)) is None


@pytest.mark.asyncio
async def test_notifier_delivers_once_per_cooldown(mocker):
    deliver = mocker.AsyncMock()
    notifier = InterventionNotifier(deliver, cooldown_minutes=10)

    first = await notifier.handle(make_insights(), now=NOW)
    second = await notifier.handle(make_insights(), now=NOW + timedelta(minutes=5))
    third = await notifier.handle(make_insights(), now=NOW + timedelta(minutes=11))

    assert first is not None
    assert second is None
    assert third is not None
    assert deliver.await_count == 2
    assert notifier.sent_count == 2


@pytest.mark.asyncio
async def test_zero_cooldown_always_delivers(mocker):
    deliver = mocker.AsyncMock()
    notifier = InterventionNotifier(deliver, cooldown_minutes=0)

    await notifier.handle(make_insights(), now=NOW)
    await notifier.handle(make_insights(), now=NOW)

    assert deliver.await_count == 2


@pytest.mark.asyncio
async def test_nothing_delivered_for_productive_activity(mocker):
    deliver = mocker.AsyncMock()
    notifier = InterventionNotifier(deliver)

    assert await notifier.handle(make_insights(is_unproductive=False), now=NOW) is None
    deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_and_retried_later(mocker):
    deliver = mocker.AsyncMock(side_effect=[RuntimeError("socket closed"), None])
    notifier = InterventionNotifier(deliver)

    assert await notifier.handle(make_insights(), now=NOW) is None
    assert notifier.last_sent_at is None
    assert await notifier.handle(make_insights(), now=NOW) is not None
