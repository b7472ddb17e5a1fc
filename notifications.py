"""
Admin notification system for the Stock Order Bot
Sends SMS/WhatsApp notifications to the admin when a day's order is committed
"""
import logging
from config import Config
from utils import format_phone_number

logger = logging.getLogger(__name__)


class AdminNotifier:
    """Send notifications to admin about committed orders"""

    def __init__(self, enabled: bool = False):
        """
        Initialize admin notifier

        Args:
            enabled: Whether notifications are enabled
        """
        self.enabled = enabled
        self.admin_phone = Config.ADMIN_PHONE
        self.twilio_client = None
        self.from_number = Config.TWILIO_PHONE_NUMBER

        if self.enabled:
            self._initialize_twilio()

    def _initialize_twilio(self):
        """Initialize Twilio client for sending notifications"""
        try:
            from twilio.rest import Client

            account_sid = Config.TWILIO_ACCOUNT_SID
            auth_token = Config.TWILIO_AUTH_TOKEN

            if not account_sid or not auth_token:
                logger.warning("Twilio credentials not configured. Admin notifications disabled.")
                self.enabled = False
                return

            self.twilio_client = Client(account_sid, auth_token)
            logger.info("✅ Twilio client initialized for admin notifications")

        except Exception as e:
            logger.error(f"Failed to initialize Twilio client: {e}")
            self.enabled = False

    def send_commit_notification(self, user_id: str, business_date: str, summary: str) -> bool:
        """
        Send the committed order summary to the admin

        Args:
            user_id: User who recorded the stock
            business_date: Date of the committed rows
            summary: One line per product with its order quantity

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.debug("Admin notifications disabled, skipping")
            return False

        if not self.admin_phone:
            logger.warning("Admin phone not configured")
            return False

        try:
            message = self.twilio_client.messages.create(
                body=self._format_commit_notification(user_id, business_date, summary),
                from_=self.from_number,
                to=self.admin_phone
            )

            logger.info(f"✅ Admin notification sent: {message.sid}")
            return True

        except Exception as e:
            logger.error(f"Failed to send admin notification: {e}")
            return False

    def _format_commit_notification(self, user_id: str, business_date: str, summary: str) -> str:
        lines = [
            "🔔 発注内容が登録されました",
            "",
            f"日付: {business_date}",
            f"担当: {format_phone_number(user_id)}",
            "",
            summary,
        ]
        return "\n".join(lines)


# Create singleton instance
admin_notifier = AdminNotifier(enabled=Config.ADMIN_NOTIFICATIONS_ENABLED)
