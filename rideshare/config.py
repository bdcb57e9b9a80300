"""Process configuration read from the environment (and ``.env``)."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{BASE_DIR / 'db' / 'database.db'}"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    # Fixed join fee, in minor currency units
    join_fee_minor: int = 200
    currency: str = "RUB"
    # Authorised (never captured) when a user saves a card
    setup_amount_minor: int = 100
    webhook_secret: str = ""
    shop_id: str = ""
    secret_key: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        settings = cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            join_fee_minor=int(os.getenv("JOIN_FEE_MINOR", "200")),
            currency=os.getenv("JOIN_FEE_CURRENCY", "RUB").strip().upper(),
            setup_amount_minor=int(os.getenv("SETUP_AMOUNT_MINOR", "100")),
            webhook_secret=os.getenv("PAYMENT_WEBHOOK_SECRET", ""),
            shop_id=os.getenv("YOOKASSA_SHOP_ID", ""),
            secret_key=os.getenv("YOOKASSA_SECRET_KEY", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        settings.warn_missing()
        return settings

    def warn_missing(self) -> None:
        if not self.webhook_secret:
            logger.warning(
                "PAYMENT_WEBHOOK_SECRET is not set; every webhook will be rejected"
            )
        if not self.shop_id or not self.secret_key:
            logger.warning(
                "YOOKASSA_SHOP_ID / YOOKASSA_SECRET_KEY are not set; payment calls will fail"
            )
