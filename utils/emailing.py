import smtplib
import uuid
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape
import os

from core.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, MAIL_FROM, APP_NAME, logger

# Jinja env
_templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)

EMAIL_BRAND_BUTTON_BG = os.getenv("EMAIL_BRAND_BUTTON_BG", "#f7b614")
EMAIL_BRAND_BUTTON_TEXT = os.getenv("EMAIL_BRAND_BUTTON_TEXT", "#000000")
EMAIL_BRAND_BG = os.getenv("EMAIL_BRAND_BG", "#f6f9fc")
_front = (os.getenv("APP_URL", "").split(",")[0].strip() or "").rstrip("/")
EMAIL_LOGO_URL = os.getenv("EMAIL_LOGO_URL", (_front + "/logo.png") if _front else "")


def render_email(template_name: str, **context) -> str:
    base = {
        "app_name": APP_NAME,
        "brand_bg": EMAIL_BRAND_BG,
        "button_bg": EMAIL_BRAND_BUTTON_BG,
        "button_text": EMAIL_BRAND_BUTTON_TEXT,
        "logo_url": EMAIL_LOGO_URL,
        "app_url": _front,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_addr: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    try:
        if not SMTP_HOST or not SMTP_PASS or not MAIL_FROM:
            logger.error("SMTP not configured; cannot send email")
            return False
        sender = (from_addr or MAIL_FROM).strip()
        display_from = f"{APP_NAME} <{sender}>" if "<" not in sender else sender
        envelope_from = sender.split("<")[-1].rstrip(">").strip() if "<" in sender else sender

        domain = envelope_from.split("@")[-1] if "@" in envelope_from else "localhost"
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = display_from
        msg["To"] = to_addr
        msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
        msg["Date"] = datetime.utcnow().strftime("%a, %d %b %Y %H:%M:%S +0000")
        if reply_to:
            msg["Reply-To"] = reply_to
        if not text:
            text = "Open this message in an HTML-capable email client."
        msg.attach(MIMEText(text or "", "plain", _charset="utf-8"))
        msg.attach(MIMEText(html or "", "html", _charset="utf-8"))

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(envelope_from, [to_addr], msg.as_string())
        return True
    except Exception as ex:
        logger.exception(f"SMTP send failed: {ex}")
        return False


def _order_text(order: Dict[str, Any]) -> str:
    lines = [f"Thank you for your order #{order.get('orderNumber')}.", ""]
    for item in order.get("items") or []:
        lines.append(f"- {item.get('title')} x{item.get('quantity')}  {float(item.get('price') or 0):.2f}")
    lines.append("")
    lines.append(f"Shipping ({order.get('shippingMethod')}): {float(order.get('shippingCost') or 0):.2f}")
    lines.append(f"Total: {float(order.get('totalOrderAmount') or 0):.2f}")
    return "\n".join(lines)


def send_order_confirmation(email: Optional[str], order: Dict[str, Any]) -> Dict[str, Any]:
    """Send the order confirmation; never raises. Returns {success, error}."""
    if not email:
        logger.warning(f"[email] no recipient for order {order.get('orderNumber')}")
        return {"success": False, "error": "Missing recipient"}
    if not SMTP_HOST:
        logger.warning("[email] SMTP_HOST not configured")
        return {"success": False, "error": "Email service not configured"}
    try:
        html = render_email("emails/order_confirmation.html", order=order)
        ok = send_email_smtp(
            to_addr=email,
            subject=f"Order Confirmation #{order.get('orderNumber')}",
            html=html,
            text=_order_text(order),
        )
        if not ok:
            return {"success": False, "error": "Failed to send order confirmation email"}
        logger.info(f"[email] order confirmation sent for {order.get('orderNumber')} to {email}")
        return {"success": True, "error": None}
    except Exception as ex:
        logger.error(f"[email] failed to send order confirmation: {ex}")
        return {"success": False, "error": "Failed to send order confirmation email"}
