# pixinity/services/mailer.py
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional

from fastapi.templating import Jinja2Templates

from pixinity.background import run_sync
from pixinity.settings.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """
    Sends an email using SMTP or the 'dummy' transport (logs only).
    Uses STARTTLS/SSL based on settings; logs in if SMTP_USERNAME is provided.
    Keeps From == authenticated user for Gmail; puts branded address in Reply-To.
    """
    transport = (settings.EMAIL_TRANSPORT or "smtp").lower()

    if transport == "dummy":
        logger.info("Dummy email to=%s subject=%r\n%s", to_email, subject, text_body)
        return True

    from_addr = (settings.SMTP_FROM or settings.SMTP_USERNAME or "").strip()
    if settings.SMTP_USERNAME and from_addr and from_addr.lower() != settings.SMTP_USERNAME.lower():
        if not reply_to:
            reply_to = from_addr
        from_addr = settings.SMTP_USERNAME

    msg = MIMEMultipart("alternative")
    msg["From"] = from_addr
    msg["To"] = to_email
    msg["Subject"] = subject
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.attach(MIMEText(text_body or "", "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    host = settings.SMTP_HOST
    port = int(settings.SMTP_PORT or 587)

    try:
        if settings.SMTP_USE_SSL:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=30) as s:
                if settings.SMTP_USERNAME:
                    s.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                s.sendmail(from_addr, [to_email], msg.as_string())
        else:
            with smtplib.SMTP(host, port, timeout=30) as s:
                s.ehlo()
                if settings.SMTP_USE_TLS:
                    s.starttls(context=ssl.create_default_context())
                    s.ehlo()
                if settings.SMTP_USERNAME:
                    s.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                s.sendmail(from_addr, [to_email], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("SMTP delivery to %s failed", to_email)
        return False


def _render(name: str, ctx: dict) -> tuple[str, str]:
    html = templates.get_template(f"email/{name}.html").render(ctx)
    text = templates.get_template(f"email/{name}.txt").render(ctx)
    return text, html


async def _deliver(to_email: str, subject: str, template: str, ctx: dict) -> bool:
    # mail is a side effect: never let it fail the caller
    try:
        text, html = _render(template, ctx)
        return await run_sync(send_email, to_email, subject, text, html)
    except Exception:
        logger.exception("Failed to send %s email to %s", template, to_email)
        return False


async def send_collaboration_invite(
    to_email: str,
    *,
    inviter_name: str,
    collection_name: str,
    collection_uuid: str,
    otp_code: str,
    needs_registration: bool,
) -> bool:
    base_url = settings.BASE_URL.rstrip("/")
    ctx = {
        "inviter_name": inviter_name,
        "collection_name": collection_name,
        "otp_code": otp_code,
        "needs_registration": needs_registration,
        "ttl_hours": settings.INVITE_OTP_TTL_HOURS,
        "join_url": f"{base_url}/collections/{collection_uuid}/join",
        "register_url": f"{base_url}/register",
    }
    subject = f"{inviter_name} invited you to collaborate on \"{collection_name}\""
    return await _deliver(to_email, subject, "collaboration_invite", ctx)


async def send_welcome_email(to_email: str, display_name: str) -> bool:
    ctx = {"display_name": display_name, "base_url": settings.BASE_URL.rstrip("/")}
    return await _deliver(to_email, "Welcome to Pixinity", "welcome", ctx)


async def send_photo_published_email(to_email: str, display_name: str, photo_title: str, photo_id: int) -> bool:
    ctx = {
        "display_name": display_name,
        "photo_title": photo_title,
        "photo_url": f"{settings.BASE_URL.rstrip('/')}/photos/{photo_id}",
    }
    return await _deliver(to_email, "Your photo is live", "photo_published", ctx)
