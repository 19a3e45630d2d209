"""
Payment Service

Two-step payment protocol used by bookings:
- authorize(amount) when a unit is claimed, returning a payment token
- capture(token, amount) at drop completion, never above the authorized amount
- release(token) when the drop fails or a capture fails

Gateways:
- CashOnPickupGateway: the consumer pays at the pickup point; tokens are
  local references and every step succeeds.
- RazorpayPaymentGateway: manual-capture Razorpay orders.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from dropmarket.config import settings

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """A payment provider call failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Payment {operation} failed: {message}")


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to the provider's smallest currency unit."""
    return int((Decimal(str(amount)) * 100).to_integral_value())


class PaymentGateway(ABC):
    """Abstract payment provider interface."""

    @abstractmethod
    async def authorize(self, amount: Decimal, reference: str) -> str:
        """Hold ``amount``; returns a payment token."""
        pass

    @abstractmethod
    async def capture(self, token: str, amount: Decimal) -> str:
        """Charge ``amount`` against an authorization; returns a receipt id."""
        pass

    @abstractmethod
    async def release(self, token: str) -> None:
        """Void an authorization or refund a capture. Safe to repeat."""
        pass


class CashOnPickupGateway(PaymentGateway):
    """Consumers pay at the pickup point; nothing is charged online."""

    async def authorize(self, amount: Decimal, reference: str) -> str:
        token = f"cod_{uuid.uuid4().hex[:16]}"
        logger.info(f"Cash-on-pickup authorization {token} for {reference}: {amount}")
        return token

    async def capture(self, token: str, amount: Decimal) -> str:
        logger.info(f"Cash-on-pickup capture {token}: {amount}")
        return f"rcpt_{token}"

    async def release(self, token: str) -> None:
        logger.info(f"Cash-on-pickup release {token}")


class RazorpayPaymentGateway(PaymentGateway):
    """
    Razorpay with manual capture.

    The token is a Razorpay order created with ``payment_capture=0``; the
    client completes checkout against it and the resulting payment stays
    authorized until captured or refunded here.
    """

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None):
        import razorpay

        self.client = razorpay.Client(
            auth=(key_id or settings.RAZORPAY_KEY_ID, key_secret or settings.RAZORPAY_KEY_SECRET)
        )
        self.currency = settings.PAYMENT_CURRENCY

    async def authorize(self, amount: Decimal, reference: str) -> str:
        order_data = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "receipt": reference[:40],
            "payment_capture": 0,
            "notes": {"reference": reference},
        }
        try:
            razorpay_order = await asyncio.to_thread(self.client.order.create, data=order_data)
        except Exception as e:
            logger.error(f"Failed to create Razorpay order for {reference}: {e}")
            raise PaymentError("authorize", str(e)) from e

        logger.info(f"Created Razorpay order {razorpay_order['id']} for {reference}")
        return razorpay_order["id"]

    async def _order_payments(self, token: str) -> list:
        payments = await asyncio.to_thread(self.client.order.payments, token)
        return payments.get("items", [])

    async def capture(self, token: str, amount: Decimal) -> str:
        try:
            payments = await self._order_payments(token)
            authorized = next((p for p in payments if p.get("status") == "authorized"), None)
            if authorized is None:
                captured = next((p for p in payments if p.get("status") == "captured"), None)
                if captured is not None:
                    return captured["id"]
                raise PaymentError("capture", f"no authorized payment on order {token}")

            response = await asyncio.to_thread(
                self.client.payment.capture,
                authorized["id"],
                to_minor_units(amount),
                {"currency": self.currency},
            )
        except PaymentError:
            raise
        except Exception as e:
            logger.error(f"Payment capture failed for {token}: {e}")
            raise PaymentError("capture", str(e)) from e

        logger.info(f"Payment captured: {response['id']} on order {token}")
        return response["id"]

    async def release(self, token: str) -> None:
        try:
            payments = await self._order_payments(token)
            for payment in payments:
                if payment.get("status") == "captured":
                    refund = await asyncio.to_thread(
                        self.client.payment.refund, payment["id"], {"notes": {"order": token}}
                    )
                    logger.info(f"Refund initiated: {refund['id']} for payment {payment['id']}")
        except Exception as e:
            logger.error(f"Refund failed for {token}: {e}")
            raise PaymentError("release", str(e)) from e
        # Uncaptured authorizations lapse on the provider side.


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get the configured gateway singleton."""
    global _gateway
    if _gateway is None:
        provider = settings.PAYMENT_PROVIDER.lower()
        if provider == "razorpay":
            _gateway = RazorpayPaymentGateway()
        elif provider == "cash_on_pickup":
            _gateway = CashOnPickupGateway()
        else:
            raise ValueError(f"Unknown PAYMENT_PROVIDER: {settings.PAYMENT_PROVIDER}")
        logger.info(f"Payment gateway initialized: {provider}")
    return _gateway
