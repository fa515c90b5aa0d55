"""Card-payment collaborator.

The core asks for a payment intent and hands its client secret to the
client. Success or failure arrives later through the confirmation webhook;
only then is the balance credited.
"""

import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class PaymentIntent:
    reference: str
    client_secret: str


class PaymentGateway(Protocol):
    async def create_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        ...


class LocalPaymentGateway:
    """Gateway stand-in for development: issues random intent references."""

    async def create_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        reference = f"pi_{secrets.token_hex(12)}"
        return PaymentIntent(
            reference=reference,
            client_secret=f"{reference}_secret_{secrets.token_hex(8)}",
        )
