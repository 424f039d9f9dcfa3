"""Outbound messages: one-time codes over email (Mailgun/SendGrid) or WhatsApp (Meta Cloud API/Twilio), and password reset links."""
import logging

import httpx

from app.config import get_settings
from app.models.one_time_code import OtpChannel

logger = logging.getLogger(__name__)

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"
META_GRAPH_BASE = "https://graph.facebook.com"
HTTP_TIMEOUT = 10.0


def send_email(to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send email via Mailgun (preferred) or SendGrid. Returns True if a provider accepted it."""
    settings = get_settings()
    if settings.mailgun_api_key and settings.mailgun_domain:
        return _send_email_mailgun(to_email, subject, html_content, text_content=text_content, settings=settings)
    if settings.sendgrid_api_key:
        return _send_email_sendgrid(to_email, subject, html_content, text_content=text_content, settings=settings)
    logger.warning("[Email] NOT SENT: to=%s subject=%s. No email provider configured.", to_email, subject)
    return False


def _send_email_mailgun(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    base = (settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
    domain = (settings.mailgun_domain or "").strip().lower()
    from_addr = (settings.mailgun_from_email or "").strip()
    from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
    if domain and from_domain != domain:
        # Mailgun drops mail whose sender domain does not match the sending domain
        from_addr = f"noreply@{domain}"
    data = {
        "from": f"{settings.mailgun_from_name} <{from_addr}>",
        "to": to_email,
        "subject": subject,
        "text": text_content or "",
        "html": html_content or "",
    }
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT) as client:
            r = client.post(f"{base}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
            if 200 <= r.status_code < 300:
                logger.info("[Mailgun] sent to=%s status=%s", to_email, r.status_code)
                return True
            if r.status_code == 401 and base == MAILGUN_US_BASE:
                logger.info("[Mailgun] 401 with US endpoint, retrying EU endpoint")
                r2 = client.post(f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
                if 200 <= r2.status_code < 300:
                    return True
                logger.error("[Mailgun] EU request failed: status=%s body=%s", r2.status_code, r2.text[:500])
                return False
            logger.error("[Mailgun] failed: status=%s to=%s body=%s", r.status_code, to_email, r.text[:500])
            return False
    except httpx.HTTPError as e:
        logger.error("[Mailgun] request error to=%s: %s: %s", to_email, type(e).__name__, e)
        return False


def _send_email_sendgrid(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=(settings.sendgrid_from_email, settings.sendgrid_from_name),
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
        plain_text_content=text_content or "",
    )
    try:
        SendGridAPIClient(settings.sendgrid_api_key).send(message)
        return True
    except Exception:
        logger.exception("[SendGrid] failed to send to=%s", to_email)
        return False


def send_verification_email(to_email: str, code: str) -> bool:
    """Email a 6-digit sign-in / signup code."""
    settings = get_settings()
    subject = f"{settings.app_name} - Your Verification Code"
    text_content = (
        f"Your {settings.app_name} verification code is: {code}. "
        f"It expires in {settings.otp_expire_minutes} minutes."
    )
    html_content = f"""
    <p>Hello,</p>
    <p>Your {settings.app_name} verification code is: <strong style="font-size:1.4em;letter-spacing:0.3em;">{code}</strong></p>
    <p>This code expires in {settings.otp_expire_minutes} minutes. If you did not request this, you can ignore this email.</p>
    <p>- {settings.app_name}</p>
    """
    if not (settings.mailgun_api_key and settings.mailgun_domain) and not settings.sendgrid_api_key and settings.app_env == "development":
        logger.warning("[Email] development mode, no provider configured: to=%s code=%s", to_email, code)
        return True
    return send_email(to_email, subject, html_content, text_content=text_content)


def _meta_configured(settings) -> bool:
    return bool(settings.meta_whatsapp_phone_number_id and settings.meta_whatsapp_access_token)


def _send_whatsapp_meta(to_number: str, code: str, settings) -> bool:
    """Meta WhatsApp Cloud API: approved OTP template first, plain text as fallback."""
    url = f"{META_GRAPH_BASE}/{settings.meta_whatsapp_api_version}/{settings.meta_whatsapp_phone_number_id}/messages"
    headers = {"Authorization": f"Bearer {settings.meta_whatsapp_access_token}"}
    template_body = {
        "messaging_product": "whatsapp",
        "to": to_number,
        "type": "template",
        "template": {
            "name": settings.meta_whatsapp_template_name,
            "language": {"code": "en"},
            "components": [
                {"type": "body", "parameters": [{"type": "text", "text": code}]},
                {"type": "button", "sub_type": "url", "index": 0, "parameters": [{"type": "text", "text": code}]},
            ],
        },
    }
    text_body = {
        "messaging_product": "whatsapp",
        "to": to_number,
        "type": "text",
        "text": {"body": f"Your {settings.app_name} verification code is: {code}. It expires in {settings.otp_expire_minutes} minutes."},
    }
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT) as client:
            r = client.post(url, headers=headers, json=template_body)
            if r.is_success:
                logger.info("[WhatsApp] template sent to=%s", to_number)
                return True
            logger.warning("[WhatsApp] template failed status=%s body=%s; trying text", r.status_code, r.text[:500])
            r2 = client.post(url, headers=headers, json=text_body)
            if r2.is_success:
                return True
            logger.error("[WhatsApp] text failed status=%s body=%s", r2.status_code, r2.text[:500])
            return False
    except httpx.HTTPError as e:
        logger.error("[WhatsApp] request error to=%s: %s: %s", to_number, type(e).__name__, e)
        return False


def _send_whatsapp_twilio(to_number: str, code: str, settings) -> bool:
    from twilio.rest import Client
    from twilio.base.exceptions import TwilioException

    try:
        client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        client.messages.create(
            body=f"Your {settings.app_name} verification code is: {code}",
            from_=f"whatsapp:{settings.twilio_whatsapp_from}",
            to=f"whatsapp:{to_number}",
        )
        return True
    except TwilioException:
        logger.exception("[Twilio] WhatsApp send failed to=%s", to_number)
        return False


def send_whatsapp_code(to_number: str, code: str) -> bool:
    """Send a code over WhatsApp via Meta, else Twilio. In development with neither
    configured, the code is written to the log instead."""
    settings = get_settings()
    if _meta_configured(settings):
        return _send_whatsapp_meta(to_number, code, settings)
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_whatsapp_from:
        return _send_whatsapp_twilio(to_number, code, settings)
    if settings.app_env == "development":
        logger.warning("[WhatsApp] development mode, no provider configured: phone=%s code=%s", to_number, code)
        return True
    logger.warning("[WhatsApp] NOT SENT: to=%s. No WhatsApp provider configured.", to_number)
    return False


def dispatch_code(channel: OtpChannel, identifier: str, code: str) -> bool:
    """Deliver an issued code. Runs after the response; the code stays valid even if delivery fails."""
    if channel == OtpChannel.email:
        sent = send_verification_email(identifier, code)
    else:
        sent = send_whatsapp_code(identifier, code)
    if not sent:
        logger.error("Delivery of %s code to %s failed", channel.value, identifier)
    return sent


def send_password_reset_email(to_email: str, link: str) -> bool:
    settings = get_settings()
    subject = f"{settings.app_name} - Reset your password"
    text_content = (
        f"Reset your {settings.app_name} password here: {link} "
        f"The link expires in {settings.password_reset_expire_minutes} minutes."
    )
    html_content = f"""
    <p>Hello,</p>
    <p>We received a request to reset your {settings.app_name} password.</p>
    <p><a href="{link}">Reset your password</a></p>
    <p>This link expires in {settings.password_reset_expire_minutes} minutes. If you did not request this, you can ignore this email.</p>
    <p>- {settings.app_name}</p>
    """
    if not (settings.mailgun_api_key and settings.mailgun_domain) and not settings.sendgrid_api_key and settings.app_env == "development":
        logger.warning("[Email] development mode, no provider configured: to=%s reset_link=%s", to_email, link)
        return True
    sent = send_email(to_email, subject, html_content, text_content=text_content)
    if not sent:
        logger.error("Password reset email to %s failed", to_email)
    return sent
