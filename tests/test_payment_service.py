from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError
from redis.exceptions import RedisError

from gym_management.models.class_models import ClassScheduleConflict, ConflictingBooking, ConflictingSession
from gym_management.models.payment_models import (
    BookingIntent,
    BookingReference,
    ClassIntent,
    CreateBookingPaymentItem,
    MembershipIntent,
)
from gym_management.models.result_models import OperationResult
from gym_management.services.payment_ledger import PaymentLedger
from gym_management.services.payment_service import PaymentService
from gym_management.services.statistics_service import StatisticsService
from conftest import make_cursor

START = datetime(2024, 3, 11, 2, 0, tzinfo=timezone.utc)


@pytest.fixture
def intent_store():
    store = MagicMock()
    store.save = AsyncMock()
    return store


@pytest.fixture
def vnpay_client():
    client = MagicMock()
    client.build_payment_url.return_value = "https://pay.test/checkout"
    return client


@pytest.fixture
def subscription_service():
    service = MagicMock()
    service.subscribe = AsyncMock(
        return_value=OperationResult.ok(
            data={
                "subscription_id": "sub-1",
                "membership": {"_id": "gold", "name": "Gold", "price": 1500000, "discount": 10},
            }
        )
    )
    service.delete_pending = AsyncMock(return_value=True)
    return service


@pytest.fixture
def booking_service():
    service = MagicMock()
    service.create_booking = AsyncMock()
    service.delete_pending_bookings = AsyncMock(return_value=1)
    return service


@pytest.fixture
def class_session_service():
    service = MagicMock()
    service.get_class = AsyncMock(return_value={"_id": "yoga", "name": "Yoga", "price": 300000})
    return service


@pytest.fixture
def class_enrollment_service():
    service = MagicMock()
    service.has_active_enrollment = AsyncMock(return_value=False)
    service.check_schedule_conflict = AsyncMock(return_value=None)
    return service


@pytest.fixture
def service(
    intent_store,
    vnpay_client,
    subscription_service,
    booking_service,
    class_session_service,
    class_enrollment_service,
    test_settings,
):
    return PaymentService(
        intent_store,
        vnpay_client,
        subscription_service,
        booking_service,
        class_session_service,
        class_enrollment_service,
        test_settings,
    )


@pytest.mark.asyncio
async def test_membership_payment_charges_discounted_price(service, intent_store, vnpay_client):
    result = await service.create_membership_payment("user-1", "gold", "10.0.0.1")

    assert result.success
    txn_ref, amount, order_info, ip_address, _ = vnpay_client.build_payment_url.call_args.args
    assert amount == 1350000
    assert order_info == "Gold"
    assert ip_address == "10.0.0.1"
    intent = intent_store.save.call_args.args[0]
    assert isinstance(intent, MembershipIntent)
    assert intent.subscription_id == "sub-1"
    assert intent.transaction_ref == txn_ref == result.data.transaction_ref


@pytest.mark.asyncio
async def test_membership_subscription_carries_transaction_ref(service, subscription_service):
    result = await service.create_membership_payment("user-1", "gold")

    assert subscription_service.subscribe.call_args.kwargs["transaction_ref"] == result.data.transaction_ref
    subscription_service.delete_pending.assert_not_awaited()


@pytest.mark.asyncio
async def test_membership_checkout_failure_removes_pending_subscription(service, subscription_service, vnpay_client):
    vnpay_client.build_payment_url.side_effect = ValueError("amount must be positive")

    with pytest.raises(ValueError):
        await service.create_membership_payment("user-1", "gold")

    subscription_service.delete_pending.assert_awaited_once_with("sub-1")


@pytest.mark.asyncio
async def test_membership_payment_propagates_subscribe_failure(service, subscription_service, intent_store):
    subscription_service.subscribe.return_value = OperationResult.fail("active", reason="ACTIVE_SUBSCRIPTION_EXISTS")
    result = await service.create_membership_payment("user-1", "gold")
    assert result.reason == "ACTIVE_SUBSCRIPTION_EXISTS"
    intent_store.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_booking_payment_totals_items(service, booking_service, intent_store, vnpay_client):
    booking_service.create_booking.side_effect = [
        OperationResult.ok(data={"booking_id": "b1"}),
        OperationResult.ok(data={"booking_id": "b2"}),
    ]
    items = [
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-1", price=300000, title="Legs"),
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-2", price=400000, title="Back"),
    ]

    result = await service.create_booking_payment(items)

    assert result.data.booking_ids == ["b1", "b2"]
    _, amount, order_info, *_ = vnpay_client.build_payment_url.call_args.args
    assert amount == 700000
    assert order_info == "2 personal training sessions"
    intent = intent_store.save.call_args.args[0]
    assert isinstance(intent, BookingIntent)
    assert intent.booking_ids == ["b1", "b2"] and intent.total_price == 700000


@pytest.mark.asyncio
async def test_booking_payment_rolls_back_on_failure(service, booking_service, intent_store):
    booking_service.create_booking.side_effect = [
        OperationResult.ok(data={"booking_id": "b1"}),
        OperationResult.fail("This slot is already booked", reason="CONFLICT"),
    ]
    items = [
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-1", price=300000),
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-2", price=400000),
    ]

    result = await service.create_booking_payment(items)

    assert result.reason == "CONFLICT"
    booking_service.delete_pending_bookings.assert_awaited_once_with(["b1"])
    intent_store.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_booking_checkout_failure_rolls_back_bookings(service, booking_service, intent_store):
    booking_service.create_booking.side_effect = [
        OperationResult.ok(data={"booking_id": "b1"}),
        OperationResult.ok(data={"booking_id": "b2"}),
    ]
    intent_store.save.side_effect = RedisError("connection refused")
    items = [
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-1", price=300000),
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-2", price=400000),
    ]

    with pytest.raises(RedisError):
        await service.create_booking_payment(items)

    booking_service.delete_pending_bookings.assert_awaited_once_with(["b1", "b2"])


def test_booking_item_price_must_be_positive():
    with pytest.raises(ValidationError):
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-1", price=0)


@pytest.mark.asyncio
async def test_booking_payment_requires_single_user(service):
    items = [
        CreateBookingPaymentItem(user_id="user-1", schedule_id="sch-1", price=1),
        CreateBookingPaymentItem(user_id="user-2", schedule_id="sch-2", price=1),
    ]
    assert not (await service.create_booking_payment(items)).success
    assert not (await service.create_booking_payment([])).success


@pytest.mark.asyncio
async def test_class_payment(service, intent_store):
    result = await service.create_class_payment("user-1", "yoga")

    assert result.success
    intent = intent_store.save.call_args.args[0]
    assert isinstance(intent, ClassIntent)
    assert intent.price == 300000


@pytest.mark.asyncio
async def test_class_payment_blocked_by_conflict(service, class_enrollment_service, intent_store):
    class_enrollment_service.check_schedule_conflict.return_value = ClassScheduleConflict(
        message="Class session overlaps an existing personal training booking",
        class_session=ConflictingSession(session_id="s1", start_time=START, end_time=START),
        existing_booking=ConflictingBooking(
            booking_id="b1", schedule_id="sch-1", trainer_id="pt-1", start_time=START, end_time=START
        ),
    )

    result = await service.create_class_payment("user-1", "yoga")

    assert result.reason == "CONFLICT"
    assert result.data["existing_booking"]["booking_id"] == "b1"
    intent_store.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_class_payment_already_enrolled(service, class_enrollment_service):
    class_enrollment_service.has_active_enrollment.return_value = True
    assert (await service.create_class_payment("user-1", "yoga")).reason == "ALREADY_EXISTS"


@pytest.mark.asyncio
async def test_ledger_refund_marks_paid_row(mock_db):
    payments = mock_db.get_collection("payments")
    payments.find_one.return_value = {"_id": "pay-1", "amount": 400000, "payment_status": "paid"}
    ledger = PaymentLedger(mock_db)

    assert await ledger.mark_refunded(BookingReference(booking_id="b1")) is True

    assert payments.find_one.call_args.args[0] == {
        "reference_id": "b1",
        "payment_type": "booking",
        "payment_status": "paid",
    }
    update = payments.update_one.call_args.args[1]["$set"]
    assert update["payment_status"] == "refunded"
    assert update["refund_amount"] == 400000


@pytest.mark.asyncio
async def test_statistics_by_type_fills_missing_types(mock_db):
    mock_db.get_collection("payments").aggregate.return_value = make_cursor(
        [{"_id": "membership", "revenue": 2700000, "count": 2}]
    )

    by_type = await StatisticsService(mock_db).revenue_by_payment_type()

    assert by_type == {
        "membership": {"revenue": 2700000, "count": 2},
        "booking": {"revenue": 0, "count": 0},
        "class": {"revenue": 0, "count": 0},
    }
