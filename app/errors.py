class PaymentError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    """Request rejected before any gateway call."""

    status_code = 400


class GatewayRejected(PaymentError):
    """Upstream gateway explicitly reported failure."""

    status_code = 502


class GatewayUnreachable(PaymentError):
    """Transport failure or upstream outage. Safe to retry."""

    status_code = 503


class GatewayResponseInvalid(GatewayUnreachable):
    """Upstream answered with a payload matching none of the known shapes."""

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload


class RecordNotFound(PaymentError):
    status_code = 404


class ConfigurationError(RuntimeError):
    pass
