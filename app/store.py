import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError

from app.errors import RecordNotFound, ValidationError
from app.models import Payment, PaymentItem, PaymentStatus, Product

logger = logging.getLogger(__name__)


class LineItemRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    product_id: int
    quantity: int
    price: Decimal


class PaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    order_id: str
    client_txn_id: str
    provider: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    utr: Optional[str] = None
    raw_status: Optional[str] = None
    order_delivery: str
    created_at: datetime
    items: List[LineItemRecord] = []


class PaymentPage(BaseModel):
    payments: List[PaymentRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


class PaymentStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def price_snapshot(self, product_ids: Iterable[int]) -> Dict[int, Decimal]:
        """Current unit price per product: discount price if set, else regular."""
        ids = set(product_ids)
        if not ids:
            return {}

        with self.session_factory() as db:
            products = (
                db.query(Product)
                .filter(Product.id.in_(ids), Product.is_deleted.is_(False))
                .all()
            )
            prices = {
                p.id: p.discount_price if p.discount_price is not None else p.regular_price
                for p in products
            }

        missing = sorted(ids - prices.keys())
        if missing:
            raise ValidationError(f"Invalid productId: {missing[0]}")
        return prices

    def create(self, *, items: Iterable[dict] = (), **fields) -> PaymentRecord:
        with self.session_factory() as db:
            payment = Payment(status=PaymentStatus.PENDING, **fields)
            payment.items = [PaymentItem(**item) for item in items]
            db.add(payment)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                # Lost an insert race on the same merchant transaction id.
                existing = (
                    db.query(Payment)
                    .filter_by(client_txn_id=fields.get("client_txn_id"), provider=fields.get("provider"))
                    .first()
                )
                if existing is None:
                    raise ValidationError(
                        f"Duplicate payment for order {fields.get('order_id')}"
                    )
                logger.warning("payment for %s already stored; returning it", existing.client_txn_id)
                return PaymentRecord.model_validate(existing)
            db.refresh(payment)
            logger.info("payment %s stored as PENDING (order %s)", payment.id, payment.order_id)
            return PaymentRecord.model_validate(payment)

    def find_by_order_id(self, order_id: str) -> Optional[PaymentRecord]:
        with self.session_factory() as db:
            payment = db.query(Payment).filter_by(order_id=order_id).first()
            return PaymentRecord.model_validate(payment) if payment else None

    def find_by_client_txn_id(self, client_txn_id: str) -> Optional[PaymentRecord]:
        with self.session_factory() as db:
            payment = db.query(Payment).filter_by(client_txn_id=client_txn_id).first()
            return PaymentRecord.model_validate(payment) if payment else None

    def get_by_order_id(self, order_id: str) -> PaymentRecord:
        record = self.find_by_order_id(order_id)
        if record is None:
            raise RecordNotFound(f"Payment not found: {order_id}")
        return record

    def compare_and_set_status(
        self,
        order_id: str,
        expected: PaymentStatus,
        new: PaymentStatus,
        *,
        utr: Optional[str] = None,
        raw_status: Optional[str] = None,
    ) -> bool:
        """Write ``new`` only if the stored status still equals ``expected``."""
        values = {Payment.status: new, Payment.raw_status: raw_status}
        if utr:
            values[Payment.utr] = utr

        with self.session_factory() as db:
            updated = (
                db.query(Payment)
                .filter(Payment.order_id == order_id, Payment.status == expected)
                .update(values, synchronize_session=False)
            )
            db.commit()

        return updated == 1

    def list_payments(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
        provider: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> PaymentPage:
        with self.session_factory() as db:
            query = db.query(Payment)
            if status is not None:
                query = query.filter(Payment.status == status)
            if provider:
                query = query.filter(Payment.provider == provider)
            if start is not None:
                query = query.filter(Payment.created_at >= start)
            if end is not None:
                query = query.filter(Payment.created_at <= end)

            total = query.count()
            rows = (
                query.order_by(Payment.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            payments = [PaymentRecord.model_validate(row) for row in rows]

        return PaymentPage(payments=payments, total=total, page=page, limit=limit)

    def mark_delivered(self, order_id: str) -> PaymentRecord:
        with self.session_factory() as db:
            payment = db.query(Payment).filter_by(order_id=order_id).first()
            if payment is None:
                raise RecordNotFound(f"Payment not found: {order_id}")
            payment.order_delivery = "Completed"
            db.commit()
            db.refresh(payment)
            return PaymentRecord.model_validate(payment)
