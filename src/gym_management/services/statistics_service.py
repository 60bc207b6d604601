"""Revenue statistics over the payment ledger."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from gym_management.models.payment_models import PaymentStatus, PaymentType


def _date_match(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    window: Dict[str, Any] = {}
    if start is not None:
        window["$gte"] = start
    if end is not None:
        window["$lt"] = end
    return {"payment_date": window} if window else {}


class StatisticsService:
    def __init__(self, db):
        self.db = db
        self.collection_name = "payments"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def payment_overview(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        paid = PaymentStatus.PAID.value
        refunded = PaymentStatus.REFUNDED.value
        pipeline: List[Dict[str, Any]] = [
            {"$match": _date_match(start, end)},
            {
                "$group": {
                    "_id": None,
                    "total_revenue": {"$sum": {"$cond": [{"$eq": ["$payment_status", paid]}, "$amount", 0]}},
                    "successful_transactions": {"$sum": {"$cond": [{"$eq": ["$payment_status", paid]}, 1, 0]}},
                    "refunded_transactions": {"$sum": {"$cond": [{"$eq": ["$payment_status", refunded]}, 1, 0]}},
                    "refunded_amount": {
                        "$sum": {"$cond": [{"$eq": ["$payment_status", refunded]}, "$refund_amount", 0]}
                    },
                }
            },
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=1)
        row = rows[0] if rows else {}
        total = row.get("total_revenue", 0)
        successful = row.get("successful_transactions", 0)
        return {
            "total_revenue": total,
            "successful_transactions": successful,
            "average_transaction": round(total / successful) if successful else 0,
            "refunded_transactions": row.get("refunded_transactions", 0),
            "refunded_amount": row.get("refunded_amount", 0),
        }

    async def revenue_by_payment_type(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Dict[str, Dict[str, int]]:
        pipeline = [
            {"$match": {**_date_match(start, end), "payment_status": PaymentStatus.PAID.value}},
            {"$group": {"_id": "$payment_type", "revenue": {"$sum": "$amount"}, "count": {"$sum": 1}}},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=None)
        by_type = {payment_type.value: {"revenue": 0, "count": 0} for payment_type in PaymentType}
        for row in rows:
            by_type[row["_id"]] = {"revenue": row["revenue"], "count": row["count"]}
        return by_type
