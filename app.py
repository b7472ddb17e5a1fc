"""
Stock Order Bot - WhatsApp Stock & Order Recording System
Walks staff through reporting remaining stock and records the day's order

Features:
- Per-user conversation state kept in Google Sheets (or Redis)
- Order quantities computed by spreadsheet formulas
- Stock and order corrections
- Admin notifications
- Input validation, rate limiting and per-user turn serialization
"""

# ---- Imports ----
import logging
from flask import Flask, request
from twilio.request_validator import RequestValidator

# Import our custom modules
from config import Config
from sheet_store import create_sheet_store
from state_manager import create_state_manager
from user_locks import create_lock_registry
from scratch import ScratchPad
from ledger import Ledger
from audit import AuditLog
from engine import ConversationEngine
from events import event_from_twilio
from replies import TwimlReplyChannel
from notifications import admin_notifier
from utils import format_phone_number, rate_limit

# ---- Logging Configuration ----
logging.basicConfig(
    level=logging.INFO if not Config.DEBUG else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ---- Validate Configuration ----
try:
    Config.validate()
    Config.log_config()
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    logger.warning("Some features may not work correctly")

# ---- Storage ----
store = create_sheet_store(
    sheet_key=Config.GOOGLE_SHEET_KEY,
    creds_json=Config.GOOGLE_CREDS_JSON,
    creds_file=Config.GOOGLE_CREDS_FILE
)

state_manager = create_state_manager(
    store=store,
    table=Config.STATE_TABLE,
    redis_enabled=Config.REDIS_ENABLED,
    redis_url=Config.REDIS_URL,
    expiration_hours=Config.STATE_EXPIRATION_HOURS
)

# ---- Conversation Engine ----
engine = ConversationEngine(
    state_manager=state_manager,
    scratch=ScratchPad(store, Config.SCRATCH_TABLE),
    ledger=Ledger(store, Config.LEDGER_TABLE, Config.BACKUP_TABLE),
    audit=AuditLog(store, Config.AUDIT_TABLE),
    locks=create_lock_registry(
        redis_enabled=Config.REDIS_ENABLED,
        redis_url=Config.REDIS_URL,
        timeout_seconds=Config.LOCK_TIMEOUT_SECONDS
    ),
    notifier=admin_notifier
)

# ---- Initialize Twilio Validator (for webhook security) ----
twilio_validator = None
if Config.TWILIO_AUTH_TOKEN:
    twilio_validator = RequestValidator(Config.TWILIO_AUTH_TOKEN)

# ---- Flask App ----
app = Flask(__name__)


# ---- Health Check Endpoint ----
@app.route("/", methods=["GET"])
def home():
    """Health check endpoint"""
    return {
        "status": "online",
        "service": f"{Config.BOT_NAME} Bot",
        "version": "1.0",
        "features": {
            "redis_enabled": Config.REDIS_ENABLED,
            "admin_notifications": Config.ADMIN_NOTIFICATIONS_ENABLED,
            "products": Config.PRODUCTS
        },
        "endpoints": {
            "whatsapp": "/whatsapp (POST)"
        }
    }, 200


# ---- Helper Functions ----
def validate_twilio_request(request_data) -> bool:
    """
    Validate that request actually came from Twilio

    Args:
        request_data: Flask request object

    Returns:
        True if valid, False otherwise
    """
    if not twilio_validator:
        logger.warning("Twilio validator not configured, skipping validation")
        return True

    if Config.DEBUG:
        # Skip validation in development mode
        return True

    try:
        url = request_data.url
        params = request_data.form
        signature = request_data.headers.get('X-Twilio-Signature', '')

        is_valid = twilio_validator.validate(url, params, signature)

        if not is_valid:
            logger.warning(f"Invalid Twilio signature from {request_data.remote_addr}")

        return is_valid
    except Exception as e:
        logger.error(f"Error validating Twilio request: {e}")
        return False


# ---- WhatsApp Webhook Endpoint ----
@app.route("/whatsapp", methods=["POST"])
def whatsapp_reply():
    """Handle incoming WhatsApp messages"""

    # Validate request is from Twilio
    if not validate_twilio_request(request):
        logger.warning("Rejected invalid request")
        return "Forbidden", 403

    event = event_from_twilio(request.values)
    replies = TwimlReplyChannel()

    if not event.is_text:
        return replies.render(event.reply_token)

    # Apply rate limiting
    is_allowed, result = rate_limit(
        max_requests=Config.RATE_LIMIT_MESSAGES,
        window_seconds=Config.RATE_LIMIT_WINDOW_SECONDS
    )(lambda user_id: True)(event.user_id)

    if not is_allowed:
        replies.reply(
            event.reply_token,
            f"⚠️ 送信が多すぎます。{result}秒ほど待ってから送信してください。"
        )
        return replies.render(event.reply_token)

    # Log incoming message
    logger.info(f"Message from {format_phone_number(event.user_id)}: {event.text[:50]}")

    engine.handle_event(event, replies)
    return replies.render(event.reply_token)


# ---- Run Flask App ----
if __name__ == "__main__":
    logger.info(f"Starting {Config.BOT_NAME} Bot...")
    app.run(host=Config.HOST, port=Config.PORT, debug=Config.DEBUG)
