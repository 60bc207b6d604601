"""
Lifecycle state machines.

Every status change for subscriptions, bookings, enrollments and payment intents goes through one
transition table per entity. Services ask the machine for the next state instead of writing status
strings directly, so an illegal move (confirming a cancelled booking, expiring a pending
subscription, ...) is rejected in one place.

```python
next_status = booking_machine.next(BookingStatus.PENDING, BookingEvent.PAYMENT_CONFIRMED)
# BookingStatus.BOOKING

booking_machine.next(BookingStatus.CANCELLED, BookingEvent.PAYMENT_CONFIRMED)
# IllegalTransitionError: booking: cannot apply 'payment_confirmed' in state 'cancelled'
```

Subscriptions store two fields (`status`, `payment_status`); their lifecycle state is derived from
the pair by `subscription_state()` and mapped back with `subscription_fields()`.
"""

from enum import Enum
from typing import Dict, Generic, Mapping, Tuple, TypeVar

from gym_management.models.booking_models import BookingStatus
from gym_management.models.class_models import EnrollmentStatus
from gym_management.models.payment_models import PaymentStatus
from gym_management.models.subscription_models import SubscriptionStatus

S = TypeVar("S", bound=Enum)
E = TypeVar("E", bound=Enum)


class IllegalTransitionError(ValueError):
    """Raised when an event is not allowed in the current state."""

    def __init__(self, machine: str, state: Enum, event: Enum):
        self.machine = machine
        self.state = state
        self.event = event
        super().__init__(f"{machine}: cannot apply '{event.value}' in state '{state.value}'")


class StateMachine(Generic[S, E]):
    def __init__(self, name: str, transitions: Mapping[Tuple[S, E], S]):
        self.name = name
        self._transitions: Dict[Tuple[S, E], S] = dict(transitions)

    def can(self, state: S, event: E) -> bool:
        return (state, event) in self._transitions

    def next(self, state: S, event: E) -> S:
        try:
            return self._transitions[(state, event)]
        except KeyError:
            raise IllegalTransitionError(self.name, state, event) from None


# --- Subscription ---


class SubscriptionState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"


class SubscriptionEvent(str, Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    STAFF_ACTIVATED = "staff_activated"
    EXPIRE = "expire"


subscription_machine: StateMachine[SubscriptionState, SubscriptionEvent] = StateMachine(
    "subscription",
    {
        (SubscriptionState.PENDING, SubscriptionEvent.PAYMENT_CONFIRMED): SubscriptionState.ACTIVE,
        (SubscriptionState.PENDING, SubscriptionEvent.STAFF_ACTIVATED): SubscriptionState.ACTIVE,
        (SubscriptionState.ACTIVE, SubscriptionEvent.EXPIRE): SubscriptionState.EXPIRED,
    },
)


def subscription_state(status: str, payment_status: str) -> SubscriptionState:
    if payment_status != PaymentStatus.PAID.value:
        return SubscriptionState.PENDING
    if status == SubscriptionStatus.ACTIVE.value:
        return SubscriptionState.ACTIVE
    return SubscriptionState.EXPIRED


def subscription_fields(state: SubscriptionState) -> Dict[str, str]:
    """Stored `status` / `payment_status` values for a lifecycle state."""
    if state == SubscriptionState.PENDING:
        return {"status": SubscriptionStatus.EXPIRED.value, "payment_status": PaymentStatus.UNPAID.value}
    if state == SubscriptionState.ACTIVE:
        return {"status": SubscriptionStatus.ACTIVE.value, "payment_status": PaymentStatus.PAID.value}
    return {"status": SubscriptionStatus.EXPIRED.value, "payment_status": PaymentStatus.PAID.value}


def transition_subscription(status: str, payment_status: str, event: SubscriptionEvent) -> Dict[str, str]:
    state = subscription_state(status, payment_status)
    return subscription_fields(subscription_machine.next(state, event))


# --- Booking ---


class BookingEvent(str, Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    SESSION_FINISHED = "session_finished"
    CANCEL = "cancel"


booking_machine: StateMachine[BookingStatus, BookingEvent] = StateMachine(
    "booking",
    {
        (BookingStatus.PENDING, BookingEvent.PAYMENT_CONFIRMED): BookingStatus.BOOKING,
        (BookingStatus.BOOKING, BookingEvent.SESSION_FINISHED): BookingStatus.COMPLETED,
        (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
        (BookingStatus.BOOKING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    },
)


def transition_booking(status: str, event: BookingEvent) -> BookingStatus:
    return booking_machine.next(BookingStatus(status), event)


# --- Class enrollment ---


class EnrollmentEvent(str, Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    CANCEL = "cancel"
    CLASS_FINISHED = "class_finished"


enrollment_machine: StateMachine[EnrollmentStatus, EnrollmentEvent] = StateMachine(
    "enrollment",
    {
        (EnrollmentStatus.PENDING, EnrollmentEvent.PAYMENT_CONFIRMED): EnrollmentStatus.ACTIVE,
        (EnrollmentStatus.PENDING, EnrollmentEvent.CANCEL): EnrollmentStatus.CANCELLED,
        (EnrollmentStatus.ACTIVE, EnrollmentEvent.CANCEL): EnrollmentStatus.CANCELLED,
        (EnrollmentStatus.ACTIVE, EnrollmentEvent.CLASS_FINISHED): EnrollmentStatus.COMPLETED,
    },
)


def transition_enrollment(status: str, event: EnrollmentEvent) -> EnrollmentStatus:
    return enrollment_machine.next(EnrollmentStatus(status), event)


# --- Payment intent ---


class IntentState(str, Enum):
    CREATED = "created"
    CONSUMED_SUCCESS = "consumed_success"
    CONSUMED_FAILURE = "consumed_failure"
    EXPIRED = "expired"


class IntentEvent(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TTL_ELAPSED = "ttl_elapsed"


intent_machine: StateMachine[IntentState, IntentEvent] = StateMachine(
    "payment_intent",
    {
        (IntentState.CREATED, IntentEvent.SUCCESS): IntentState.CONSUMED_SUCCESS,
        (IntentState.CREATED, IntentEvent.FAILURE): IntentState.CONSUMED_FAILURE,
        (IntentState.CREATED, IntentEvent.TTL_ELAPSED): IntentState.EXPIRED,
    },
)
