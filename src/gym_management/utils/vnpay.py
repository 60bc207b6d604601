"""
VNPay gateway codec.

Builds signed payment URLs and verifies the signed query string VNPay appends when redirecting the
customer back to `VNPAY_RETURN_URL`. Signing is HMAC-SHA512 over the `vnp_*` parameters sorted by
key and form-encoded, as documented by VNPay (API version 2.1.0). Amounts travel multiplied by 100.
"""

import hashlib
import hmac
import urllib.parse
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.utils.date_utils import format_vnpay_date, parse_vnpay_pay_date, utc_now

logger = get_logger(prefix="[VNPAY]")

SUCCESS_CODE = "00"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")


class VnpayReturn(BaseModel):
    """Parsed and verified gateway return."""

    is_verified: bool
    is_success: bool
    txn_ref: str = ""
    amount: int = 0
    pay_date: Optional[datetime] = None
    order_info: str = ""
    response_code: str = ""
    transaction_status: str = ""
    raw: Dict[str, str] = Field(default_factory=dict)


def _sign_data(params: Mapping[str, Any]) -> str:
    return "&".join(
        f"{key}={urllib.parse.quote_plus(str(params[key]))}"
        for key in sorted(params)
        if key.startswith("vnp_") and key not in HASH_FIELDS and params[key] not in (None, "")
    )


def sign(params: Mapping[str, Any], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _sign_data(params).encode("utf-8"), hashlib.sha512).hexdigest()


def build_redirect_url(base_url: str, params: Mapping[str, Any], service: str = "vnpay") -> str:
    """Frontend redirect echoing the gateway parameters, prefixed with `service=`."""
    query = urllib.parse.urlencode([("service", service), *((k, str(v)) for k, v in params.items())])
    return f"{base_url}{query}"


class VnpayClient:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    @property
    def _secret(self) -> str:
        return self.settings.VNPAY_HASH_SECRET.get_secret_value()

    def build_payment_url(
        self,
        txn_ref: str,
        amount: int,
        order_info: str,
        ip_address: str = "127.0.0.1",
        now: Optional[datetime] = None,
    ) -> str:
        """Signed URL that sends the customer to the VNPay checkout page."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        now = now or utc_now()
        cfg = self.settings
        params = {
            "vnp_Version": cfg.VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": cfg.VNPAY_TMN_CODE,
            "vnp_Amount": str(int(amount) * 100),
            "vnp_CurrCode": cfg.VNPAY_CURR_CODE,
            "vnp_TxnRef": txn_ref,
            "vnp_OrderInfo": order_info or txn_ref,
            "vnp_OrderType": "other",
            "vnp_Locale": cfg.VNPAY_LOCALE,
            "vnp_ReturnUrl": cfg.VNPAY_RETURN_URL,
            "vnp_IpAddr": ip_address,
            "vnp_CreateDate": format_vnpay_date(now),
            "vnp_ExpireDate": format_vnpay_date(now + timedelta(seconds=cfg.PAYMENT_INTENT_TTL_SECONDS)),
        }
        query = _sign_data(params)
        return f"{cfg.VNPAY_PAYMENT_URL}?{query}&vnp_SecureHash={sign(params, self._secret)}"

    def verify_return(self, query: Mapping[str, Any]) -> VnpayReturn:
        """Check the signature and extract the fields the reconciler needs."""
        raw = {k: str(v) for k, v in query.items()}
        received = raw.get("vnp_SecureHash", "")
        expected = sign(raw, self._secret)
        is_verified = bool(received) and hmac.compare_digest(received.lower(), expected)
        if not is_verified:
            logger.warning(f"Signature mismatch for txn {raw.get('vnp_TxnRef')}")

        pay_date = None
        if raw.get("vnp_PayDate"):
            try:
                pay_date = parse_vnpay_pay_date(raw["vnp_PayDate"])
            except ValueError:
                logger.warning(f"Unparseable vnp_PayDate {raw['vnp_PayDate']!r}")

        try:
            amount = int(raw.get("vnp_Amount", "0")) // 100
        except ValueError:
            amount = 0

        response_code = raw.get("vnp_ResponseCode", "")
        transaction_status = raw.get("vnp_TransactionStatus", "")
        return VnpayReturn(
            is_verified=is_verified,
            is_success=is_verified and response_code == SUCCESS_CODE and transaction_status == SUCCESS_CODE,
            txn_ref=raw.get("vnp_TxnRef", ""),
            amount=amount,
            pay_date=pay_date,
            order_info=raw.get("vnp_OrderInfo", ""),
            response_code=response_code,
            transaction_status=transaction_status,
            raw=raw,
        )
