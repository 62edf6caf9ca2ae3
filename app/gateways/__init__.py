from typing import Dict

from app.config import Settings
from app.errors import ConfigurationError
from app.gateways.base import (
    CreatedOrder,
    CustomerInfo,
    GatewayAdapter,
    MerchantMetadata,
    RawObservation,
)
from app.gateways.ezupi import EzUpiAdapter
from app.gateways.mobalegends import MobalegendsAdapter


def build_gateways(settings: Settings) -> Dict[str, GatewayAdapter]:
    """Construct every enabled adapter; missing credentials fail here."""
    factories = {
        "mobalegends": lambda: MobalegendsAdapter(settings.mobalegends),
        "ezupi": lambda: EzUpiAdapter(settings.ezupi, currency=settings.currency),
    }

    gateways = {}
    for name in settings.enabled_gateways:
        if name not in factories:
            raise ConfigurationError(f"Unknown gateway in ENABLED_GATEWAYS: {name}")
        gateways[name] = factories[name]()
    return gateways


__all__ = [
    "CreatedOrder",
    "CustomerInfo",
    "EzUpiAdapter",
    "GatewayAdapter",
    "MerchantMetadata",
    "MobalegendsAdapter",
    "RawObservation",
    "build_gateways",
]
