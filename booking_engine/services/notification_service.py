import smtplib
from decimal import Decimal
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from booking_engine.core.config import settings
from booking_engine.core.config_loader import load_marketplace_config, get_notification_config
from booking_engine.core.logger import logger

DEFAULT_REFUND_TEMPLATE = (
    "Your refund of {amount} for booking {booking_id} has been processed successfully. "
    "Refund ID: {refund_id}. The amount will be credited to your original payment method "
    "within 5-7 business days."
)

def send_email(subject: str, body: str, to_email: str = None) -> bool:
    """
    Sends an email using SMTP (e.g., Gmail).
    defaults `to_email` to the support_email from config if not provided.
    Returns: True if successful, False otherwise.
    """
    config = load_marketplace_config()
    notif_config = get_notification_config(config)

    if not notif_config.get("email_enabled", False):
         logger.info("ℹ️ Email notifications are disabled in config.")
         return False

    if not to_email:
        to_email = config.get("support_email")
        if not to_email:
             logger.error("❌ No recipient email found (support_email missing in config).")
             return False

    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.error("❌ SMTP credentials missing in .env.")
        return False

    try:
        msg = MIMEMultipart()
        msg['From'] = settings.SMTP_USERNAME
        msg['To'] = to_email
        msg['Subject'] = subject

        msg.attach(MIMEText(body, 'plain'))

        server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT)
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_USERNAME, to_email, msg.as_string())
        server.quit()

        logger.info(f"✅ Email sent to {to_email} with subject: '{subject}'")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ Email delivery failed: {e}")
        return False

def send_refund_notification(booking_id: str, amount: Decimal, refund_id: str, to_email: Optional[str] = None) -> bool:
    """
    Tells the customer (or the support inbox) that a refund went through.
    Never raises; a failed notification must not affect the refund.
    """
    try:
        config = load_marketplace_config()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"❌ Refund notification skipped, config unavailable: {e}")
        return False

    notif_config = get_notification_config(config)
    if not notif_config.get("refund_notifications", True):
        logger.info("ℹ️ Refund notifications are disabled in config.")
        return False

    currency = config.get("currency_symbol", "")
    template = notif_config.get("refund_email_template", DEFAULT_REFUND_TEMPLATE)
    subject_template = notif_config.get("refund_email_subject", "Refund processed for booking {booking_id}")
    try:
        body = template.format(amount=f"{currency}{amount}", booking_id=booking_id, refund_id=refund_id)
        subject = subject_template.format(booking_id=booking_id, refund_id=refund_id)
    except (KeyError, IndexError) as e:
        logger.error(f"❌ Error formatting refund notification: {e}")
        return False

    return send_email(subject, body, to_email)
