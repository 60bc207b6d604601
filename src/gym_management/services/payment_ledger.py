"""Append-only payment ledger: one row per successful transaction, updated only for refunds."""

from typing import Any, Dict, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.payment_models import Payment, PaymentStatus, Reference
from gym_management.utils.date_utils import utc_now

logger = get_logger(prefix="[PaymentLedger]")


class PaymentLedger:
    def __init__(self, db):
        self.db = db
        self.collection_name = "payments"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def record(self, payment: Payment) -> str:
        await self.collection.insert_one(payment.to_document())
        logger.info(
            f"Recorded {payment.reference.payment_type} payment {payment.id} "
            f"for {payment.reference.reference_id}: {payment.amount}"
        )
        return payment.id

    async def mark_refunded(self, reference: Reference, refund_amount: Optional[int] = None) -> bool:
        """Flag the paid ledger row for `reference` as refunded (full amount unless given)."""
        payment = await self.collection.find_one(
            {
                "reference_id": reference.reference_id,
                "payment_type": reference.payment_type,
                "payment_status": PaymentStatus.PAID.value,
            }
        )
        if payment is None:
            logger.warning(f"No paid payment found for {reference.payment_type} {reference.reference_id}")
            return False

        await self.collection.update_one(
            {"_id": payment["_id"], "payment_status": PaymentStatus.PAID.value},
            {
                "$set": {
                    "payment_status": PaymentStatus.REFUNDED.value,
                    "refund_amount": payment["amount"] if refund_amount is None else refund_amount,
                    "refund_date": utc_now(),
                }
            },
        )
        logger.info(f"Refunded payment {payment['_id']}")
        return True

    async def list_for_user(self, user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page = max(page, 1)
        query = {"user_id": user_id}
        items = (
            await self.collection.find(query)
            .sort("payment_date", -1)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        total = await self.collection.count_documents(query)
        return {"payments": items, "total": total, "page": page, "limit": limit}
