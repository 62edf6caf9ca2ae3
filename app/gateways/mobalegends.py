import logging
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field
from pydantic import ValidationError as SchemaError

from app.config import MobalegendsConfig
from app.errors import ConfigurationError, GatewayRejected
from app.gateways.base import (
    CreatedOrder,
    CustomerInfo,
    GatewayAdapter,
    GatewaySchema,
    MerchantMetadata,
    RawObservation,
    Text,
)
from app.models import PaymentStatus

logger = logging.getLogger(__name__)


class CreateOrderData(GatewaySchema):
    transaction_id: Text = Field(alias="transactionId", min_length=1)
    payment_url: Optional[str] = Field(default=None, alias="paymentUrl")


class CreateOrderResponse(GatewaySchema):
    success: bool
    message: Optional[str] = None
    data: Optional[CreateOrderData] = None


class FlatStatus(GatewaySchema):
    status: str
    utr: Optional[Text] = None
    message: Optional[str] = None


class NestedStatus(GatewaySchema):
    data: FlatStatus
    message: Optional[str] = None


class WebhookEvent(GatewaySchema):
    transaction_id: Text = Field(alias="transactionId", min_length=1)
    status: str = Field(min_length=1)
    utr: Optional[Text] = None
    amount: Optional[Decimal] = None


class MobalegendsAdapter(GatewayAdapter):
    """JSON API; pushes status changes through a webhook."""

    name = "mobalegends"
    supports_webhook = True
    status_map = {
        "SUCCESS": PaymentStatus.COMPLETED,
        "FAILED": PaymentStatus.FAILED,
        "CANCELLED": PaymentStatus.FAILED,
        "PENDING": PaymentStatus.PENDING,
        "CREATED": PaymentStatus.PENDING,
    }

    def __init__(self, config: MobalegendsConfig, transport=None):
        if not config.api_key:
            raise ConfigurationError("MOBALEGENDS_API_KEY is not configured")
        super().__init__(timeout_seconds=config.timeout_seconds, transport=transport)
        self.config = config

    def create_order(self, amount: Decimal, customer: CustomerInfo, metadata: MerchantMetadata) -> CreatedOrder:
        payload = {
            "apiKey": self.config.api_key,
            "amount": float(amount),
            "client_txn_id": metadata.transaction_id,
            "customerName": customer.name,
            "customerEmail": customer.email,
            "customerMobile": customer.phone,
            "redirectUrl": self.config.redirect_url,
            "pInfo": metadata.description or "Order Payment",
            "udf1": metadata.notes,
            "udf2": metadata.extra.get("udf2"),
            "udf3": metadata.extra.get("udf3"),
        }
        if self.config.merchant_name:
            payload["merchantName"] = self.config.merchant_name
        if self.config.upi_id:
            payload["upiId"] = self.config.upi_id

        body = self._send("POST", f"{self.config.base_url}/payments/create", json=payload)
        response = self._decode(body, CreateOrderResponse)

        if not response.success or response.data is None:
            raise GatewayRejected(response.message or "Mobalegends rejected the payment")

        logger.info("mobalegends: order %s created for %s", response.data.transaction_id, metadata.transaction_id)
        return CreatedOrder(
            external_order_id=response.data.transaction_id,
            payment_url=response.data.payment_url,
            raw=body,
        )

    def query_status(self, external_order_id: str) -> RawObservation:
        body = self._send("GET", f"{self.config.base_url}/payments/status/{external_order_id}")
        if isinstance(body, dict) and body.get("success") is False:
            raise GatewayRejected(body.get("message") or "Mobalegends rejected the status query")
        decoded = self._decode(body, FlatStatus, NestedStatus)
        status = decoded if isinstance(decoded, FlatStatus) else decoded.data

        return self.observation(
            external_order_id,
            status.status,
            utr=status.utr,
            message=status.message or decoded.message,
        )

    def parse_webhook(self, payload: Any) -> Optional[RawObservation]:
        try:
            event = WebhookEvent.model_validate(payload)
        except SchemaError:
            return None

        return self.observation(
            event.transaction_id,
            event.status,
            utr=event.utr or None,
            amount=event.amount,
        )
