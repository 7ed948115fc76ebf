"""
Checkout simulation.

There is no payment gateway: placing an order waits for a simulated
processing delay, then closes out the cart through the manager.
"""
import asyncio
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from storefront.cart import CartManager, CheckoutSummary
from storefront.errors import EmptyCartError
from storefront.logging import get_logger

logger = get_logger(__name__)

SIMULATED_PROCESSING_SECONDS = 2.0


class ShippingContact(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "United States"


@dataclass
class OrderConfirmation:
    order_reference: str
    summary: CheckoutSummary
    contact: ShippingContact
    placed_at: str

    def to_dict(self) -> dict:
        return {
            "order_reference": self.order_reference,
            "placed_at": self.placed_at,
            "email": self.contact.email,
            **self.summary.to_dict(),
        }


class CheckoutService:
    """Turns the current cart into a (simulated) order."""

    def __init__(self, manager: CartManager, processing_delay: float = SIMULATED_PROCESSING_SECONDS):
        self.manager = manager
        self.processing_delay = processing_delay

    def quote(self) -> CheckoutSummary:
        return self.manager.checkout_summary()

    async def place_order(self, contact: ShippingContact) -> OrderConfirmation:
        if self.manager.cart.is_empty:
            raise EmptyCartError()

        if self.processing_delay > 0:
            await asyncio.sleep(self.processing_delay)

        summary = await self.manager.complete_checkout()
        confirmation = OrderConfirmation(
            order_reference=f"ORD-{secrets.token_hex(4).upper()}",
            summary=summary,
            contact=contact,
            placed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info("Order %s placed, total %s", confirmation.order_reference, summary.total)
        return confirmation
