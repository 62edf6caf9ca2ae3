import json
import logging
from datetime import datetime
from functools import lru_cache
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from app.auth import require_admin
from app.config import Settings
from app.database import SessionLocal
from app.errors import RecordNotFound
from app.gate import UpdateGate
from app.gateways import CustomerInfo, build_gateways
from app.models import PaymentStatus
from app.service import PaymentService
from app.store import PaymentRecord, PaymentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments")


class ItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int


class PaymentRequest(BaseModel):
    amount: Union[str, float, int]
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    udf2: Optional[str] = None
    udf3: Optional[str] = None
    client_txn_id: Optional[str] = None
    items: List[ItemRequest] = []


@lru_cache
def get_gateways():
    return build_gateways(Settings.from_env())


def get_store():
    return PaymentStore(SessionLocal)


def get_service(store=Depends(get_store), gateways=Depends(get_gateways)):
    return PaymentService(store, gateways, currency=Settings.from_env().currency)


def get_gate(store=Depends(get_store)):
    return UpdateGate(store)


def _summary(record: PaymentRecord) -> dict:
    return {
        "payment_id": record.id,
        "order_id": record.order_id,
        "transaction_id": record.client_txn_id,
        "amount": record.amount,
        "currency": record.currency,
        "status": record.status,
    }


@router.post("/{provider}")
def create_payment_api(
    provider: str,
    request: PaymentRequest,
    service: PaymentService = Depends(get_service),
):
    result = service.create_payment(
        provider,
        request.amount,
        CustomerInfo(
            name=request.name,
            email=request.email,
            phone=request.phone,
            address=request.address,
        ),
        description=request.description,
        notes=request.notes,
        items=[item.model_dump() for item in request.items],
        client_txn_id=request.client_txn_id,
        extra={"udf2": request.udf2, "udf3": request.udf3},
    )

    if not result.created:
        return {
            "success": True,
            "data": _summary(result.record),
            "message": "Payment already exists",
        }

    return {
        "success": True,
        "data": {**_summary(result.record), "payment_url": result.payment_url},
        "message": "Payment initiated successfully",
    }


@router.get("/ezupi/callback")
def ezupi_callback(
    transaction_id: Optional[str] = None,
    order_id: Optional[str] = None,
    service: PaymentService = Depends(get_service),
    gate: UpdateGate = Depends(get_gate),
):
    try:
        adapter = service.gateway("ezupi")
    except RecordNotFound:
        logger.warning("ezupi callback received but the gateway is not enabled")
        return {"received": True}

    gate.receive_callback(adapter, order_id or transaction_id)
    return {"received": True}


@router.get("/{provider}/status/{order_id}")
def payment_status(
    provider: str,
    order_id: str,
    service: PaymentService = Depends(get_service),
    gate: UpdateGate = Depends(get_gate),
):
    outcome = gate.poll(service.gateway(provider), order_id)
    record = outcome.record

    messages = {
        PaymentStatus.COMPLETED: "Payment completed",
        PaymentStatus.FAILED: "Payment failed",
        PaymentStatus.PENDING: "Payment pending",
    }
    return {
        "success": True,
        "data": {
            "status": record.status,
            "amount": record.amount,
            "currency": record.currency,
            "created_at": record.created_at,
            "raw_status": outcome.raw_status,
            "utr": record.utr,
        },
        "message": messages[record.status],
    }


@router.post("/{provider}/webhook")
async def payment_webhook(
    provider: str,
    request: Request,
    service: PaymentService = Depends(get_service),
    gate: UpdateGate = Depends(get_gate),
):
    adapter = service.gateway(provider)
    if not adapter.supports_webhook:
        raise HTTPException(status_code=404, detail="Webhooks not supported")

    body = await request.body()
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        logger.warning("%s webhook with malformed body ignored", provider)
        payload = None

    gate.receive_webhook(adapter, payload)
    return {"received": True}


@router.get("")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[PaymentStatus] = None,
    provider: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    service: PaymentService = Depends(get_service),
    admin=Depends(require_admin),
):
    result = service.list_payments(
        page=page,
        limit=limit,
        status=status,
        provider=provider,
        start=start_date,
        end=end_date,
    )
    return {
        "success": True,
        "data": {
            "payments": [p.model_dump() for p in result.payments],
            "pagination": {
                "total": result.total,
                "page": result.page,
                "limit": result.limit,
                "totalPages": result.total_pages,
            },
        },
        "message": "Payments fetched successfully",
    }


@router.patch("/{order_id}/delivery")
def mark_delivered(
    order_id: str,
    service: PaymentService = Depends(get_service),
    admin=Depends(require_admin),
):
    record = service.mark_delivered(order_id)
    return {
        "success": True,
        "data": record.model_dump(),
        "message": "Order delivery status updated to Completed",
    }
