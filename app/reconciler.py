"""Decides how an observed gateway status changes a stored payment status."""

from typing import NamedTuple

from app.models import PaymentStatus


class Decision(NamedTuple):
    new_status: PaymentStatus
    should_persist: bool


def reconcile(stored: PaymentStatus, observed: PaymentStatus) -> Decision:
    # Terminal states are sinks: late observations never move them.
    if stored.is_terminal:
        return Decision(stored, False)

    if observed == PaymentStatus.COMPLETED:
        return Decision(PaymentStatus.COMPLETED, True)

    if observed == PaymentStatus.FAILED:
        return Decision(PaymentStatus.FAILED, True)

    return Decision(PaymentStatus.PENDING, False)
