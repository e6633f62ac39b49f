import logging
from decimal import Decimal

import razorpay
from razorpay.errors import SignatureVerificationError

from config import config
from errors import PaymentVerificationFailed
from services.pricing import to_minor_units

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """
    Thin wrapper around the Razorpay API with the two calls checkout needs:

    create_order: reserve a payment order for an amount the widget collects.
    verify_payment: check the signature the widget hands back after capture.
    """

    def __init__(self, key_id: str = None, key_secret: str = None):
        self.key_id = key_id or config.RAZORPAY_KEY_ID
        key_secret = key_secret or config.RAZORPAY_KEY_SECRET
        if not self.key_id or not key_secret:
            raise RuntimeError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set")
        self._client = razorpay.Client(auth=(self.key_id, key_secret))

    def create_order(self, amount: Decimal, receipt: str, currency: str = None) -> dict:
        """
        Args:
            amount: Amount in rupees; sent to Razorpay in paise.
            receipt: Merchant-side reference shown on the Razorpay dashboard.

        Returns:
            The Razorpay order payload (id, amount, currency, status, ...).
        """
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency or config.CURRENCY,
            "receipt": receipt,
        }
        order = self._client.order.create(payload)
        logger.info(f"Created Razorpay order {order.get('id')} for {payload['amount']} {payload['currency']}")
        return order

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> None:
        if not (order_id and payment_id and signature):
            raise PaymentVerificationFailed("Missing Razorpay payment confirmation fields")
        try:
            self._client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except SignatureVerificationError as e:
            logger.warning(f"Signature check failed for Razorpay order {order_id}")
            raise PaymentVerificationFailed("Payment signature verification failed") from e
