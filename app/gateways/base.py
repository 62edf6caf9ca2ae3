import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, Any, Dict, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel, BeforeValidator
from pydantic import ValidationError as SchemaError

from app.errors import GatewayRejected, GatewayResponseInvalid, GatewayUnreachable
from app.models import PaymentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class MerchantMetadata:
    transaction_id: str
    description: Optional[str] = None
    notes: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreatedOrder:
    external_order_id: str
    payment_url: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawObservation:
    external_order_id: str
    raw_status: str
    status: PaymentStatus
    utr: Optional[str] = None
    message: Optional[str] = None
    amount: Optional[Decimal] = None


class GatewayAdapter(ABC):
    name: str = ""
    supports_webhook: bool = False
    required_customer_fields: Tuple[str, ...] = ()
    status_map: Mapping[str, PaymentStatus] = {}

    def __init__(self, timeout_seconds: float = 20.0, transport: Optional[httpx.BaseTransport] = None):
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @abstractmethod
    def create_order(self, amount: Decimal, customer: CustomerInfo, metadata: MerchantMetadata) -> CreatedOrder:
        ...

    @abstractmethod
    def query_status(self, external_order_id: str) -> RawObservation:
        ...

    def parse_webhook(self, payload: Any) -> Optional[RawObservation]:
        raise NotImplementedError(f"{self.name} does not deliver webhooks")

    def normalize_status(self, raw_status: str) -> PaymentStatus:
        key = (raw_status or "").strip().upper()
        status = self.status_map.get(key)
        if status is None:
            logger.warning("%s: unmapped gateway status %r treated as PENDING", self.name, raw_status)
            return PaymentStatus.PENDING
        return status

    def observation(self, external_order_id: str, raw_status: str, **kwargs) -> RawObservation:
        return RawObservation(
            external_order_id=external_order_id,
            raw_status=raw_status,
            status=self.normalize_status(raw_status),
            **kwargs,
        )

    def _send(self, method: str, url: str, **kwargs) -> Any:
        """One HTTP round trip; returns the decoded JSON body."""
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.error("%s: %s %s failed: %s", self.name, method, url, exc)
            raise GatewayUnreachable(f"{self.name} is unreachable: {exc}") from exc

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None

        if response.status_code >= 500:
            logger.error("%s: %s %s returned %s", self.name, method, url, response.status_code)
            raise GatewayUnreachable(f"{self.name} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise GatewayRejected(message or f"{self.name} returned HTTP {response.status_code}")
        if body is None:
            raise GatewayResponseInvalid(f"{self.name} returned a non-JSON response")
        return body

    def _decode(self, payload: Any, *schemas):
        """Validate payload against each accepted shape, in order."""
        for schema in schemas:
            try:
                return schema.model_validate(payload)
            except SchemaError:
                continue
        raise GatewayResponseInvalid(f"Unexpected {self.name} response shape", payload=payload)


def _as_text(value):
    # Gateways send references such as UTRs as numbers or strings.
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


Text = Annotated[str, BeforeValidator(_as_text)]


class GatewaySchema(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}
