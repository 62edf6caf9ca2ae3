import logging
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, NamedTuple, Optional

from app.errors import RecordNotFound, ValidationError
from app.gateways.base import CustomerInfo, GatewayAdapter, MerchantMetadata
from app.store import PaymentRecord, PaymentStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CreatedPayment(NamedTuple):
    record: PaymentRecord
    payment_url: Optional[str]
    created: bool


def parse_amount(raw: Any) -> Decimal:
    """Positive decimal amount rounded to two places, or ValidationError."""
    if isinstance(raw, bool) or raw is None:
        raise ValidationError("amount must be a valid number")
    try:
        amount = Decimal(str(raw).strip()).quantize(CENT)
    except InvalidOperation:
        raise ValidationError("amount must be a valid number")

    if amount.is_nan():
        raise ValidationError("amount must be a valid number")
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")
    return amount


def new_transaction_id() -> str:
    return f"TXN_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class PaymentService:
    def __init__(self, store: PaymentStore, gateways: Dict[str, GatewayAdapter], currency: str = "INR"):
        self.store = store
        self.gateways = gateways
        self.currency = currency

    def gateway(self, provider: str) -> GatewayAdapter:
        adapter = self.gateways.get((provider or "").lower())
        if adapter is None:
            raise RecordNotFound(f"Unknown payment provider: {provider}")
        return adapter

    def create_payment(
        self,
        provider: str,
        amount: Any,
        customer: CustomerInfo,
        *,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        items: Iterable[Dict[str, Any]] = (),
        client_txn_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> CreatedPayment:
        adapter = self.gateway(provider)

        if client_txn_id:
            existing = self.store.find_by_client_txn_id(client_txn_id)
            if existing is not None:
                if existing.provider != adapter.name:
                    raise ValidationError(f"client_txn_id already used: {client_txn_id}")
                return CreatedPayment(existing, None, False)

        value = parse_amount(amount)
        for field_name in adapter.required_customer_fields:
            if not getattr(customer, field_name):
                raise ValidationError(f"customer {field_name} is required")
        line_items = self._line_items(items)

        metadata = MerchantMetadata(
            transaction_id=client_txn_id or new_transaction_id(),
            description=description,
            notes=notes,
            extra=extra or {},
        )
        order = adapter.create_order(value, customer, metadata)

        record = self.store.create(
            order_id=order.external_order_id,
            client_txn_id=metadata.transaction_id,
            provider=adapter.name,
            amount=value,
            currency=self.currency,
            customer_name=customer.name or "Unknown",
            customer_email=customer.email or "unknown@example.com",
            customer_phone=customer.phone or "0000000000",
            customer_address=customer.address or "N/A",
            description=description or "N/A",
            notes=notes or "N/A",
            items=line_items,
        )
        if record.order_id != order.external_order_id:
            # A concurrent request with the same client_txn_id stored first.
            return CreatedPayment(record, None, False)
        return CreatedPayment(record, order.payment_url, True)

    def _line_items(self, items: Iterable[Dict[str, Any]]):
        items = list(items)
        for item in items:
            quantity = item.get("quantity")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f"Invalid quantity for productId: {item.get('product_id')}")

        prices = self.store.price_snapshot(item["product_id"] for item in items)
        return [
            {
                "product_id": item["product_id"],
                "quantity": item["quantity"],
                "price": prices[item["product_id"]],
            }
            for item in items
        ]

    def list_payments(self, **filters):
        return self.store.list_payments(**filters)

    def mark_delivered(self, order_id: str) -> PaymentRecord:
        return self.store.mark_delivered(order_id)
