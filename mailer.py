"""
Outbound email through Resend, plus the order email bodies.
"""

import logging
from typing import Dict, Optional

import resend

import config

logger = logging.getLogger(__name__)


class MailError(Exception):
    pass


class Mailer:
    def __init__(self, api_key: str, sender: str):
        self.api_key = (api_key or "").strip()
        self.sender = sender
        # the resend SDK reads one process-wide key; set it once here
        if self.api_key:
            resend.api_key = self.api_key

    def send(self, to: str, subject: str, text: str, html: str) -> str:
        """Send one email and return the provider message id. Raises MailError."""
        if not self.api_key:
            raise MailError("Resend API key is not configured.")
        if not to:
            raise MailError("Recipient email is missing.")

        payload: Dict[str, object] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "text": text,
            "html": html,
        }
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            raise MailError(str(exc)) from exc

        message_id = response.get("id") if isinstance(response, dict) else None
        if not message_id:
            raise MailError(str(response))
        logger.info("Sent email %r to %s (%s)", subject, to, message_id)
        return message_id


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = Mailer(config.RESEND_API_KEY, config.MAIL_FROM)
    return _mailer


def order_confirmation_email(user_name: str, order_id: str, total_price: float):
    store = config.STORE_NAME
    text = f"Thank you for shopping with {store}!"
    html = f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; margin: 0; padding: 0; background-color: #f4f4f4;">
    <div style="max-width: 600px; margin: 0 auto; background-color: #fff; padding: 20px;">
      <h1 style="text-align: center; color: #333;">Hello {user_name},</h1>
      <p style="font-size: 16px; color: #555;">Thank you for shopping with <strong style="color: #2a9d8f;">{store}</strong>!
        Your order has been received and is being processed.<br /> You will receive your order within 3 - 4 working days
      </p>
      <p style="font-size: 18px; color: #333; font-weight: bold;">Order Details:</p>
      <p style="font-size: 16px; color: #555;">Order ID: <span style="font-weight: bold;">{order_id}</span></p>
      <p style="font-size: 16px; color: #555;">Total: <span style="font-weight: bold;">Ksh {total_price}</span></p>
      <p style="font-size: 16px; color: #555; margin-top: 20px;">If you have any questions, feel free to contact our support team.
        <br /> {config.SUPPORT_EMAIL}</p>
      <p style="font-size: 16px; color: red; margin-top: 20px;">This Email is system generated. Please Do not reply</p>
    </div>
  </body>
</html>"""
    return "Order Confirmation", text, html


def order_status_email(user_name: str, order_id: str, status: str, total_price: float):
    subject = f"Your order status has been updated to: {status}"
    text = f"Your order with ID {order_id} is now {status}."
    html = f"""
<html>
  <body style="font-family: Arial, sans-serif; background-color: #f4f4f4; padding: 20px;">
    <div style="max-width: 600px; margin: auto; background-color: white; padding: 20px; border-radius: 8px;">
      <h2 style="color: #2a9d8f;">Hi {user_name},</h2>
      <p>Your order <strong>#{order_id}</strong> has been updated.</p>
      <p><strong>New Status:</strong> {status}</p>
      <p>Total: Ksh {total_price}</p>
      <p style="margin-top: 20px;">Thank you for choosing {config.STORE_NAME}.</p>
    </div>
  </body>
</html>"""
    return subject, text, html
