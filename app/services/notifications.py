"""
Customer emails sent after a purchase or an admin-issued access code.
Uses Resend if RESEND_API_KEY is set; otherwise a no-op so webhooks never fail.
"""
import logging
from typing import Optional

import resend

from app.core import config

logger = logging.getLogger(__name__)


def _render(template: str, payload: dict) -> Optional[tuple]:
    name = payload.get("customerName") or "there"
    if template == "purchase_access":
        links = payload.get("links") or {}
        tools = payload.get("tools") or []
        subject = f"Your {config.APP_NAME} access is ready"
        html = f"<p>Hi {name},</p><p>Thanks for your purchase of {payload.get('productName', 'your tools')}.</p>"
        if tools:
            html += "<ul>" + "".join(f"<li>{tool}</li>" for tool in tools) + "</ul>"
        for label, url in links.items():
            html += f'<p><a href="{url}">Open {label}</a></p>'
        html += f'<p>You can also activate with this email at <a href="{config.APP_BASE_URL}/activate">{config.APP_BASE_URL}/activate</a>.</p>'
        return subject, html
    if template == "access_code":
        subject = f"Your {config.APP_NAME} access code"
        html = (
            f"<p>Hi {name},</p>"
            f"<p>Your access code is <strong>{payload['code']}</strong>.</p>"
            f'<p><a href="{payload["accessLink"]}">Use your access link</a></p>'
            "<p>This code can be used once.</p>"
        )
        return subject, html
    return None


def send_notification(recipient: str, template: str, payload: dict) -> bool:
    """
    Returns True if the email was handed to Resend, False if skipped or failed.
    Does not raise; entitlement state never depends on delivery.
    """
    if not config.RESEND_API_KEY or not recipient:
        return False

    rendered = _render(template, payload)
    if rendered is None:
        logger.error("[Notify] Unknown template %s", template)
        return False
    subject, html = rendered

    try:
        resend.api_key = config.RESEND_API_KEY
        resend.Emails.send({
            "from": config.NOTIFY_FROM_EMAIL,
            "to": [recipient],
            "subject": subject,
            "html": html,
        })
        logger.info("[Notify] %s email sent to %s", template, recipient)
        return True
    except Exception as e:
        logger.error("[Notify] Failed to send %s to %s: %s", template, recipient, e)
        return False
