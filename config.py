"""
Configuration management for the Stock Order Bot
Handles environment variables, sheet layout and dialogue keywords
"""
import os
import json
import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


def _env_list(name: str, default: str) -> List[str]:
    """Read a comma separated list from the environment"""
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Config:
    """Centralized configuration management"""

    # ---- Environment ----
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    DEBUG = ENVIRONMENT == "development"

    # ---- Flask ----
    PORT = int(os.getenv("PORT", 5000))
    HOST = os.getenv("HOST", "0.0.0.0")

    # ---- Twilio ----
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER", "")

    # ---- Google Sheets ----
    GOOGLE_CREDS_JSON = os.getenv("GOOGLE_CREDS_JSON")
    GOOGLE_CREDS_FILE = os.getenv("GOOGLE_CREDS_FILE", "stockbot-key.json")
    GOOGLE_SHEET_KEY = os.getenv("GOOGLE_SHEET_KEY", "")

    STATE_TABLE = os.getenv("STATE_TABLE", "状態")
    SCRATCH_TABLE = os.getenv("SCRATCH_TABLE", "入力中")
    LEDGER_TABLE = os.getenv("LEDGER_TABLE", "発注記録")
    AUDIT_TABLE = os.getenv("AUDIT_TABLE", "ログ")
    BACKUP_TABLE = os.getenv("BACKUP_TABLE", "バックアップ")

    # ---- Redis ----
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_ENABLED = os.getenv("REDIS_ENABLED", "false").lower() == "true"
    STATE_EXPIRATION_HOURS = int(os.getenv("STATE_EXPIRATION_HOURS", 72))
    LOCK_TIMEOUT_SECONDS = int(os.getenv("LOCK_TIMEOUT_SECONDS", 30))

    # ---- Business Date ----
    CUTOFF_HOUR = int(os.getenv("CUTOFF_HOUR", 11))
    UTC_OFFSET_HOURS = int(os.getenv("UTC_OFFSET_HOURS", 9))

    # ---- Catalog ----
    PRODUCTS = _env_list("PRODUCTS", "キャベツ,プリン,カレー")
    DEFAULT_LEAD_DAYS = int(os.getenv("DEFAULT_LEAD_DAYS", 2))
    DELIVERY_LEAD_DAYS: Dict[str, int] = json.loads(
        os.getenv("DELIVERY_LEAD_DAYS", '{"キャベツ": 3}')
    )
    # Resolved by the spreadsheet against the 条件 (conditions) sheet
    ORDER_FORMULA_TEMPLATE = os.getenv(
        "ORDER_FORMULA_TEMPLATE",
        '=IF(D{row}="","",MAX(0,IFERROR(VLOOKUP(C{row},条件!$A:$C,'
        'MATCH(B{row},条件!$A$1:$C$1,0),FALSE),0)-D{row}))'
    )

    # ---- Keywords ----
    KEYWORD_START = os.getenv("KEYWORD_START", "入力")
    KEYWORD_CORRECT = os.getenv("KEYWORD_CORRECT", "訂正")
    KEYWORD_ORDER_CORRECT = os.getenv("KEYWORD_ORDER_CORRECT", "発注訂正")
    KEYWORD_CHECK = os.getenv("KEYWORD_CHECK", "確認")
    KEYWORD_YES = os.getenv("KEYWORD_YES", "はい")
    KEYWORD_NO = os.getenv("KEYWORD_NO", "いいえ")
    KEYWORD_CANCEL = os.getenv("KEYWORD_CANCEL", "キャンセル")
    KEYWORD_KIND_STOCK = os.getenv("KEYWORD_KIND_STOCK", "残数")
    KEYWORD_KIND_ORDER = os.getenv("KEYWORD_KIND_ORDER", "発注数")

    # ---- Admin Settings ----
    ADMIN_PHONE = os.getenv("ADMIN_PHONE", "")
    ADMIN_NOTIFICATIONS_ENABLED = os.getenv("ADMIN_NOTIFICATIONS_ENABLED", "false").lower() == "true"

    # ---- Rate Limiting ----
    RATE_LIMIT_MESSAGES = int(os.getenv("RATE_LIMIT_MESSAGES", 20))
    RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 60))

    # ---- Branding ----
    BOT_NAME = "Stock Order"

    @classmethod
    def lead_days(cls, product: str) -> int:
        """Days between the business date and delivery for a product"""
        return int(cls.DELIVERY_LEAD_DAYS.get(product, cls.DEFAULT_LEAD_DAYS))

    @classmethod
    def validate(cls) -> bool:
        """
        Validate required configuration settings
        Returns True if valid, raises ValueError if invalid
        """
        errors = []

        # Only validate Twilio if admin notifications are enabled
        if cls.ADMIN_NOTIFICATIONS_ENABLED:
            if not cls.TWILIO_ACCOUNT_SID:
                errors.append("TWILIO_ACCOUNT_SID is required for admin notifications")
            if not cls.TWILIO_AUTH_TOKEN:
                errors.append("TWILIO_AUTH_TOKEN is required for admin notifications")
            if not cls.ADMIN_PHONE:
                errors.append("ADMIN_PHONE is required for admin notifications")

        # Google Sheets is the durable store
        if not cls.GOOGLE_CREDS_JSON and not os.path.exists(cls.GOOGLE_CREDS_FILE):
            errors.append(f"GOOGLE_CREDS_JSON environment variable or {cls.GOOGLE_CREDS_FILE} file required")
        if not cls.GOOGLE_SHEET_KEY:
            errors.append("GOOGLE_SHEET_KEY is required")

        if not 0 <= cls.CUTOFF_HOUR <= 23:
            errors.append("CUTOFF_HOUR must be between 0 and 23")

        if len(cls.PRODUCTS) == 0:
            errors.append("PRODUCTS must name at least one product")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)

        return True

    @classmethod
    def log_config(cls):
        """Log current configuration (excluding sensitive data)"""
        logger.info("=" * 50)
        logger.info(f"{cls.BOT_NAME} Bot Configuration")
        logger.info("=" * 50)
        logger.info(f"Environment: {cls.ENVIRONMENT}")
        logger.info(f"Debug Mode: {cls.DEBUG}")
        logger.info(f"Redis Enabled: {cls.REDIS_ENABLED}")
        logger.info(f"Products: {', '.join(cls.PRODUCTS)}")
        logger.info(f"Business date cutoff: {cls.CUTOFF_HOUR:02d}:00 (UTC{cls.UTC_OFFSET_HOURS:+d})")
        logger.info(f"Admin Notifications: {'Enabled' if cls.ADMIN_NOTIFICATIONS_ENABLED else 'Disabled'}")
        logger.info("=" * 50)
