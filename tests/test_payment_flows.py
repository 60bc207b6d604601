"""Gateway return scenarios run through the reconciler and real services over mocked collections."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from gym_management.jobs.tasks import GymJobs
from gym_management.models.lifecycle import IntentState
from gym_management.models.payment_models import BookingIntent, ClassIntent, MembershipIntent
from gym_management.services.booking_service import BookingService
from gym_management.services.class_enrollment_service import ClassEnrollmentService
from gym_management.services.class_session_service import ClassSessionService
from gym_management.services.membership_service import MembershipService
from gym_management.services.notification_service import NotificationService
from gym_management.services.payment_ledger import PaymentLedger
from gym_management.services.payment_reconciler import PaymentReconciler
from gym_management.services.schedule_service import ScheduleService
from gym_management.services.subscription_service import SubscriptionService
from gym_management.services.user_service import UserService
from gym_management.utils.vnpay import VnpayClient, sign
from conftest import make_cursor

PAID_AT = datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc)
EXPIRE_AT = PAID_AT + timedelta(minutes=10)


def gateway_query(txn_ref, amount, response_code="00", transaction_status="00", secret="test-hash-secret"):
    params = {
        "vnp_Amount": str(amount * 100),
        "vnp_BankCode": "NCB",
        "vnp_OrderInfo": "Gym payment",
        "vnp_PayDate": "20240310100000",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": "GYMTEST1",
        "vnp_TransactionNo": "14300001",
        "vnp_TransactionStatus": transaction_status,
        "vnp_TxnRef": txn_ref,
    }
    params["vnp_SecureHash"] = sign(params, secret)
    return params


@pytest.fixture
def intent_store():
    store = MagicMock()
    store.consume = AsyncMock(return_value=None)
    return store


@pytest.fixture
def services(mock_db, test_settings):
    users = UserService(mock_db)
    memberships = MembershipService(mock_db)
    ledger = PaymentLedger(mock_db)
    notifications = NotificationService(mock_db, test_settings)
    schedules = ScheduleService(mock_db)
    bookings = BookingService(mock_db, schedules, users, notifications, ledger)
    sessions = ClassSessionService(mock_db)
    enrollments = ClassEnrollmentService(mock_db, sessions, bookings, ledger)
    subscriptions = SubscriptionService(mock_db, users, memberships, notifications, ledger, test_settings)
    return {
        "users": users,
        "memberships": memberships,
        "ledger": ledger,
        "notifications": notifications,
        "bookings": bookings,
        "sessions": sessions,
        "enrollments": enrollments,
        "subscriptions": subscriptions,
    }


@pytest.fixture
def reconciler(services, intent_store, test_settings):
    return PaymentReconciler(
        intent_store,
        VnpayClient(test_settings),
        services["users"],
        services["subscriptions"],
        services["bookings"],
        services["sessions"],
        services["enrollments"],
        services["ledger"],
        test_settings,
    )


@pytest.fixture
def membership_intent():
    return MembershipIntent(
        transaction_ref="ref-m",
        expire_at=EXPIRE_AT,
        subscription_id="sub-1",
        user_id="user-1",
        membership_id="gold",
    )


@pytest.fixture
def pending_subscription(mock_db):
    mock_db.get_collection("subscriptions").find_one.return_value = {
        "_id": "sub-1",
        "user_id": "user-1",
        "membership_id": "gold",
        "status": "expired",
        "payment_status": "unpaid",
        "expire_at": EXPIRE_AT,
        "destroyed": False,
    }
    mock_db.get_collection("memberships").find_one.return_value = {
        "_id": "gold",
        "name": "Gold",
        "duration_month": 3,
        "price": 1500000,
        "discount": 10,
    }
    mock_db.get_collection("users").find_one.return_value = {"_id": "user-1", "role": "user"}


@pytest.mark.asyncio
async def test_membership_success_activates_subscription(
    reconciler, intent_store, membership_intent, pending_subscription, mock_db
):
    intent_store.consume.side_effect = [membership_intent, None]
    query = gateway_query("ref-m", 1350000)

    outcome = await reconciler.handle_vnpay_return(query)

    assert outcome.success
    assert outcome.intent_state == IntentState.CONSUMED_SUCCESS
    assert outcome.redirect_url.startswith("http://fe.test/user/payment/success?service=vnpay&")
    intent_store.consume.assert_awaited_once_with("ref-m")

    update = mock_db.get_collection("subscriptions").update_one.call_args.args[1]
    assert update["$set"]["status"] == "active"
    assert update["$set"]["payment_status"] == "paid"
    assert update["$set"]["start_date"] == PAID_AT
    assert update["$set"]["end_date"] == datetime(2024, 6, 10, 3, 0, tzinfo=timezone.utc)

    payments = mock_db.get_collection("payments")
    payments.insert_one.assert_awaited_once()
    row = payments.insert_one.call_args.args[0]
    assert row["payment_type"] == "membership"
    assert row["reference_id"] == "sub-1"
    assert row["amount"] == 1350000
    assert row["payment_method"] == "vnpay"

    # A duplicate callback finds no intent and writes nothing
    duplicate = await reconciler.handle_vnpay_return(query)
    assert not duplicate.success
    assert duplicate.redirect_url == "http://fe.test/user/payment/failed"
    payments.insert_one.assert_awaited_once()


@pytest.mark.asyncio
async def test_trainer_is_redirected_to_pt_area(
    reconciler, intent_store, membership_intent, pending_subscription, mock_db
):
    mock_db.get_collection("users").find_one.return_value = {"_id": "user-1", "role": "pt"}
    intent_store.consume.return_value = membership_intent

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-m", 1350000))

    assert outcome.redirect_url.startswith("http://fe.test/pt/payment/success?")


@pytest.mark.asyncio
async def test_paid_intent_without_pending_subscription_is_not_a_success(
    reconciler, intent_store, membership_intent, mock_db
):
    intent_store.consume.return_value = membership_intent

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-m", 1350000))

    assert not outcome.success
    assert outcome.intent_state == IntentState.CONSUMED_FAILURE
    assert outcome.redirect_url == "http://fe.test/user/payment/failed"
    mock_db.get_collection("payments").insert_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_paying_an_older_checkout_extends_the_active_subscription(
    reconciler, intent_store, membership_intent, pending_subscription, mock_db
):
    # sub-1 is still pending from a first checkout; sub-0 became active through a later one
    active_end = datetime(2024, 5, 1, tzinfo=timezone.utc)
    pending = mock_db.get_collection("subscriptions").find_one.return_value
    active = {**pending, "_id": "sub-0", "status": "active", "payment_status": "paid", "end_date": active_end}
    subscriptions = mock_db.get_collection("subscriptions")

    async def find_subscription(query, **kwargs):
        return active if query.get("status") == "active" else pending

    subscriptions.find_one.side_effect = find_subscription
    intent_store.consume.return_value = membership_intent

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-m", 1350000))

    assert outcome.success
    guard, update = subscriptions.update_one.call_args.args
    assert guard == {"_id": "sub-0"}
    assert update["$set"]["end_date"] == datetime(2024, 8, 1, tzinfo=timezone.utc)
    subscriptions.delete_one.assert_awaited_once_with({"_id": "sub-1", "payment_status": "unpaid"})
    row = mock_db.get_collection("payments").insert_one.call_args.args[0]
    assert row["reference_id"] == "sub-0"


@pytest.mark.asyncio
async def test_membership_failure_deletes_pending_subscription(
    reconciler, intent_store, membership_intent, pending_subscription, mock_db
):
    intent_store.consume.return_value = membership_intent

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-m", 1350000, "24", "02"))

    assert not outcome.success
    assert outcome.intent_state == IntentState.CONSUMED_FAILURE
    assert outcome.redirect_url == "http://fe.test/user/payment/failed"
    mock_db.get_collection("subscriptions").delete_one.assert_awaited_once_with(
        {"_id": "sub-1", "payment_status": "unpaid"}
    )
    mock_db.get_collection("payments").insert_one.assert_not_awaited()
    intent_store.consume.assert_awaited_once_with("ref-m")


@pytest.mark.asyncio
async def test_bad_signature_leaves_intent_alone(reconciler, intent_store, mock_db):
    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-m", 1350000, secret="forged"))

    assert not outcome.success
    assert outcome.message == "Invalid signature"
    intent_store.consume.assert_not_awaited()
    mock_db.get_collection("payments").insert_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_two_booking_payment_confirms_each_booking(reconciler, intent_store, mock_db):
    prices = {"b1": 300000, "b2": 400000}
    intent_store.consume.return_value = BookingIntent(
        transaction_ref="ref-b",
        expire_at=EXPIRE_AT,
        booking_ids=["b1", "b2"],
        user_id="user-1",
        total_price=700000,
    )
    bookings = mock_db.get_collection("bookings")
    bookings.find_one.side_effect = lambda query: {
        "_id": query["_id"],
        "user_id": "user-1",
        "status": "pending",
        "price": prices[query["_id"]],
        "title": "PT session",
    }

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-b", 700000))

    assert outcome.success
    assert outcome.payment_type == "booking"
    confirmed = [c.args for c in bookings.update_one.call_args_list]
    assert [guard["_id"] for guard, _ in confirmed] == ["b1", "b2"]
    assert all(update["$set"]["status"] == "booking" for _, update in confirmed)

    rows = [c.args[0] for c in mock_db.get_collection("payments").insert_one.call_args_list]
    assert len(rows) == 2
    assert {(r["reference_id"], r["amount"]) for r in rows} == {("b1", 300000), ("b2", 400000)}
    assert all(r["payment_type"] == "booking" for r in rows)


@pytest.mark.asyncio
async def test_booking_failure_deletes_pending_batch(reconciler, intent_store, mock_db):
    intent_store.consume.return_value = BookingIntent(
        transaction_ref="ref-b",
        expire_at=EXPIRE_AT,
        booking_ids=["b1", "b2"],
        user_id="user-1",
        total_price=700000,
    )

    await reconciler.handle_vnpay_return(gateway_query("ref-b", 700000, "24", "02"))

    mock_db.get_collection("bookings").delete_many.assert_awaited_once_with(
        {"_id": {"$in": ["b1", "b2"]}, "status": "pending"}
    )


@pytest.mark.asyncio
async def test_class_payment_enrolls_user(reconciler, intent_store, mock_db):
    intent_store.consume.return_value = ClassIntent(
        transaction_ref="ref-c",
        expire_at=EXPIRE_AT,
        user_id="user-1",
        class_id="yoga",
        price=300000,
        title="Yoga",
    )
    sessions = mock_db.get_collection("class_sessions")
    sessions.update_many.return_value = MagicMock(matched_count=4, modified_count=4)

    outcome = await reconciler.handle_vnpay_return(gateway_query("ref-c", 300000))

    assert outcome.success
    enrollment = mock_db.get_collection("class_enrollments").insert_one.call_args.args[0]
    assert (enrollment["status"], enrollment["payment_status"]) == ("active", "paid")
    assert enrollment["user_id"] == "user-1" and enrollment["class_id"] == "yoga"

    session_filter, session_update = sessions.update_many.call_args.args
    assert session_filter["class_id"] == "yoga"
    assert "$gte" in session_filter["start_time"]
    assert session_update == {"$addToSet": {"users": "user-1"}}

    payments = mock_db.get_collection("payments")
    payments.insert_one.assert_awaited_once()
    row = payments.insert_one.call_args.args[0]
    assert row["payment_type"] == "class"
    assert row["reference_id"] == enrollment["_id"]
    assert row["amount"] == 300000


@pytest.mark.asyncio
async def test_booking_status_rollover(services, mock_db, test_settings):
    finished = {
        "_id": "b1",
        "status": "booking",
        "schedule": {"_id": "sch-1", "end_time": PAID_AT - timedelta(hours=1)},
    }
    bookings = mock_db.get_collection("bookings")
    bookings.aggregate.return_value = make_cursor([finished])
    bookings.update_many.return_value = MagicMock(matched_count=1, modified_count=1)
    jobs = GymJobs(
        services["bookings"],
        services["sessions"],
        services["enrollments"],
        services["subscriptions"],
        services["memberships"],
        services["notifications"],
        test_settings,
    )

    stats = await jobs.complete_finished_bookings(PAID_AT)

    assert stats["processed"] == 1 and stats["updated"] == 1
    pipeline = bookings.aggregate.call_args.args[0]
    assert pipeline[0] == {"$match": {"status": "booking"}}
    assert {"$match": {"schedule.end_time": {"$lt": PAID_AT}}} in pipeline
    target, update = bookings.update_many.call_args.args
    assert target == {"_id": {"$in": ["b1"]}, "status": "booking"}
    assert update["$set"]["status"] == "completed"
