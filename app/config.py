import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass(frozen=True)
class MobalegendsConfig:
    api_key: Optional[str]
    base_url: str = "https://gateway.mobalegends.in/api"
    redirect_url: str = "http://localhost:3000/payment/success"
    merchant_name: Optional[str] = None
    upi_id: Optional[str] = None
    timeout_seconds: float = 20.0


@dataclass(frozen=True)
class EzUpiConfig:
    api_key: Optional[str]
    base_url: str = "https://ezupi.com/api"
    callback_url: Optional[str] = None
    timeout_seconds: float = 20.0


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    jwt_secret: Optional[str]
    mobalegends: MobalegendsConfig
    ezupi: EzUpiConfig
    currency: str = "INR"
    log_level: str = "INFO"
    enabled_gateways: Tuple[str, ...] = ("mobalegends", "ezupi")

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "20"))
        enabled = os.getenv("ENABLED_GATEWAYS", "mobalegends,ezupi")

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            jwt_secret=os.getenv("JWT_SECRET"),
            currency=os.getenv("PAYMENT_CURRENCY", "INR").upper(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            enabled_gateways=tuple(
                name.strip().lower() for name in enabled.split(",") if name.strip()
            ),
            mobalegends=MobalegendsConfig(
                api_key=os.getenv("MOBALEGENDS_API_KEY"),
                base_url=os.getenv(
                    "MOBALEGENDS_API_URL", "https://gateway.mobalegends.in/api"
                ).rstrip("/"),
                redirect_url=os.getenv(
                    "SUCCESS_REDIRECT_URL", "http://localhost:3000/payment/success"
                ),
                merchant_name=os.getenv("MOBALEGENDS_MERCHANT_NAME"),
                upi_id=os.getenv("MOBALEGENDS_UPI_ID"),
                timeout_seconds=timeout,
            ),
            ezupi=EzUpiConfig(
                api_key=os.getenv("EZ_UPI_API_KEY"),
                base_url=os.getenv("EZ_UPI_API_URL", "https://ezupi.com/api").rstrip("/"),
                callback_url=os.getenv("CALLBACK_URL"),
                timeout_seconds=timeout,
            ),
        )
