import logging
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, Field

from app.config import EzUpiConfig
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


class OrderResult(GatewaySchema):
    order_id: Text = Field(alias="orderId", min_length=1)
    payment_url: Optional[str] = None


class CreateOrderResponse(GatewaySchema):
    status: bool
    message: Optional[str] = None
    result: Optional[OrderResult] = None


class TransactionResult(GatewaySchema):
    status: str = Field(validation_alias=AliasChoices("txnStatus", "status"))
    utr: Optional[Text] = None
    amount: Optional[Decimal] = None


class OrderStatusResponse(GatewaySchema):
    status: bool
    message: Optional[str] = None
    result: Optional[TransactionResult] = None


class EzUpiAdapter(GatewayAdapter):
    """Form-encoded API; the browser callback is verified by polling."""

    name = "ezupi"
    required_customer_fields = ("name", "phone")
    status_map = {
        "SUCCESS": PaymentStatus.COMPLETED,
        "FAILURE": PaymentStatus.FAILED,
        "FAILED": PaymentStatus.FAILED,
        "PENDING": PaymentStatus.PENDING,
        "CREATED": PaymentStatus.PENDING,
        "SCANNING": PaymentStatus.PENDING,
    }

    def __init__(self, config: EzUpiConfig, currency: str = "INR", transport=None):
        if not config.api_key:
            raise ConfigurationError("EZ_UPI_API_KEY is not configured")
        super().__init__(timeout_seconds=config.timeout_seconds, transport=transport)
        self.config = config
        self.currency = currency

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def create_order(self, amount: Decimal, customer: CustomerInfo, metadata: MerchantMetadata) -> CreatedOrder:
        form = {
            "user_token": self.config.api_key,
            "amount": str(amount),
            "currency": self.currency,
            "order_id": metadata.transaction_id,
            "redirect_url": self.config.callback_url or "",
            "customer_name": customer.name,
            "customer_mobile": customer.phone,
            "customer_email": customer.email or "",
            "customer_address": customer.address or "",
            "remark1": metadata.description or "",
            "remark2": metadata.notes or "",
        }

        body = self._send("POST", f"{self.config.base_url}/create-order", data=form, headers=self._headers)
        response = self._decode(body, CreateOrderResponse)

        if not response.status or response.result is None:
            raise GatewayRejected(response.message or "Failed to create payment")

        logger.info("ezupi: order %s created for %s", response.result.order_id, metadata.transaction_id)
        return CreatedOrder(
            external_order_id=response.result.order_id,
            payment_url=response.result.payment_url,
            raw=body,
        )

    def query_status(self, external_order_id: str) -> RawObservation:
        # Form POST like create-order; the older integration sent these as GET query params.
        form = {"user_token": self.config.api_key, "order_id": external_order_id}
        body = self._send("POST", f"{self.config.base_url}/check-order-status", data=form, headers=self._headers)
        response = self._decode(body, OrderStatusResponse)

        if not response.status or response.result is None:
            raise GatewayRejected(response.message or "Failed to fetch payment status")

        return self.observation(
            external_order_id,
            response.result.status,
            utr=response.result.utr,
            message=response.message,
            amount=response.result.amount,
        )
