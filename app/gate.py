import logging
from typing import Any, NamedTuple, Optional

from app.errors import PaymentError, RecordNotFound
from app.gateways.base import GatewayAdapter, RawObservation
from app.reconciler import reconcile
from app.store import PaymentRecord, PaymentStore

logger = logging.getLogger(__name__)


class GateOutcome(NamedTuple):
    record: PaymentRecord
    written: bool
    raw_status: Optional[str] = None


class UpdateGate:
    def __init__(self, store: PaymentStore):
        self.store = store

    def apply(self, observation: RawObservation) -> GateOutcome:
        record = self.store.get_by_order_id(observation.external_order_id)
        decision = reconcile(record.status, observation.status)

        if not decision.should_persist:
            if record.status.is_terminal and observation.status != record.status:
                # Late corrections from the gateway are not applied.
                logger.warning(
                    "order %s is %s; ignoring observed %s (%s)",
                    record.order_id, record.status.value,
                    observation.status.value, observation.raw_status,
                )
            return GateOutcome(record, False, observation.raw_status)

        won = self.store.compare_and_set_status(
            record.order_id,
            expected=record.status,
            new=decision.new_status,
            utr=observation.utr,
            raw_status=observation.raw_status,
        )
        if won:
            logger.info("order %s: %s -> %s", record.order_id, record.status.value, decision.new_status.value)
        else:
            logger.info("order %s: concurrent update already finalized the record", record.order_id)

        return GateOutcome(self.store.get_by_order_id(record.order_id), won, observation.raw_status)

    def poll(self, adapter: GatewayAdapter, order_id: str) -> GateOutcome:
        record = self.store.get_by_order_id(order_id)
        if record.provider != adapter.name:
            raise RecordNotFound(f"Payment not found: {order_id}")

        observation = adapter.query_status(order_id)
        return self.apply(observation)

    def receive_webhook(self, adapter: GatewayAdapter, payload: Any) -> None:
        """Apply a pushed event. Never raises; senders only get an ack."""
        observation = adapter.parse_webhook(payload)
        if observation is None:
            logger.warning("%s webhook without transactionId/status ignored", adapter.name)
            return

        record = self.store.find_by_order_id(observation.external_order_id)
        if record is None or record.provider != adapter.name:
            logger.warning("%s webhook for unknown order %s ignored", adapter.name, observation.external_order_id)
            return

        if observation.amount is not None and observation.amount != record.amount:
            logger.warning(
                "%s webhook for order %s carries amount %s, stored %s; ignored",
                adapter.name, record.order_id, observation.amount, record.amount,
            )
            return

        try:
            self.apply(observation)
        except PaymentError as exc:
            logger.warning("%s webhook for order %s not applied: %s", adapter.name, record.order_id, exc)

    def receive_callback(self, adapter: GatewayAdapter, order_id: Optional[str]) -> None:
        """Browser callback: re-check with the gateway instead of trusting the query string."""
        if not order_id:
            logger.warning("%s callback without order id ignored", adapter.name)
            return

        try:
            self.poll(adapter, order_id)
        except PaymentError as exc:
            logger.warning("%s callback for order %s not applied: %s", adapter.name, order_id, exc)
