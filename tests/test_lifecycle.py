import pytest

from gym_management.models.booking_models import BookingStatus
from gym_management.models.class_models import EnrollmentStatus
from gym_management.models.lifecycle import (
    BookingEvent,
    EnrollmentEvent,
    IllegalTransitionError,
    IntentEvent,
    IntentState,
    SubscriptionEvent,
    SubscriptionState,
    booking_machine,
    intent_machine,
    subscription_state,
    transition_booking,
    transition_enrollment,
    transition_subscription,
)


def test_subscription_state_is_derived_from_stored_pair():
    assert subscription_state("expired", "unpaid") == SubscriptionState.PENDING
    assert subscription_state("active", "paid") == SubscriptionState.ACTIVE
    assert subscription_state("expired", "paid") == SubscriptionState.EXPIRED


def test_subscription_transitions():
    assert transition_subscription("expired", "unpaid", SubscriptionEvent.PAYMENT_CONFIRMED) == {
        "status": "active",
        "payment_status": "paid",
    }
    assert transition_subscription("active", "paid", SubscriptionEvent.EXPIRE) == {
        "status": "expired",
        "payment_status": "paid",
    }


def test_pending_subscription_cannot_expire():
    with pytest.raises(IllegalTransitionError) as exc:
        transition_subscription("expired", "unpaid", SubscriptionEvent.EXPIRE)
    assert exc.value.machine == "subscription"
    assert isinstance(exc.value, ValueError)


def test_booking_transitions():
    assert transition_booking("pending", BookingEvent.PAYMENT_CONFIRMED) == BookingStatus.BOOKING
    assert transition_booking("booking", BookingEvent.SESSION_FINISHED) == BookingStatus.COMPLETED
    assert transition_booking("booking", BookingEvent.CANCEL) == BookingStatus.CANCELLED
    assert not booking_machine.can(BookingStatus.COMPLETED, BookingEvent.CANCEL)
    with pytest.raises(IllegalTransitionError):
        transition_booking("cancelled", BookingEvent.PAYMENT_CONFIRMED)


def test_enrollment_cannot_be_cancelled_twice():
    assert transition_enrollment("active", EnrollmentEvent.CANCEL) == EnrollmentStatus.CANCELLED
    with pytest.raises(IllegalTransitionError):
        transition_enrollment("cancelled", EnrollmentEvent.CANCEL)


def test_intent_is_terminal_after_one_outcome():
    consumed = intent_machine.next(IntentState.CREATED, IntentEvent.SUCCESS)
    assert consumed == IntentState.CONSUMED_SUCCESS
    for event in IntentEvent:
        assert not intent_machine.can(consumed, event)
    assert intent_machine.next(IntentState.CREATED, IntentEvent.TTL_ELAPSED) == IntentState.EXPIRED
