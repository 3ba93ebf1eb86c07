"""
Outbound email: welcome messages and order confirmations.

Delivery is best effort. The send_* helpers never raise; a failed send is
logged and the request that triggered it is unaffected.
"""
import logging
from abc import ABC, abstractmethod
from html import escape
from typing import Optional

import resend

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, html: str) -> None:
        ...


class LogNotifier(Notifier):
    """Used when no email provider is configured."""

    def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email to %s not sent (no provider configured): %s", to, subject)


class ResendNotifier(Notifier):
    def __init__(self, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender

    def send(self, to: str, subject: str, html: str) -> None:
        resend.api_key = self.api_key
        resend.Emails.send({"from": self.sender, "to": [to], "subject": subject, "html": html})


def build_notifier(api_key: Optional[str], sender: str) -> Notifier:
    if api_key:
        return ResendNotifier(api_key, sender)
    return LogNotifier()


def send_welcome_email(notifier: Notifier, user: dict) -> None:
    html = (
        f"<h2>Welcome to PawMart!</h2>"
        f"<p>Dear {escape(user.get('name', ''))},</p>"
        f"<p>Your account is ready. Browse pets and supplies or create your first listing.</p>"
    )
    try:
        notifier.send(user["email"], "Welcome to PawMart!", html)
        logger.info("Welcome email sent to %s", user["email"])
    except Exception:
        logger.exception("Failed to send welcome email to %s", user.get("email"))


def send_order_confirmation(notifier: Notifier, order: dict) -> None:
    try:
        html = (
            f"<h2>Order Confirmation</h2>"
            f"<p>Dear {escape(order.get('buyer_name', ''))},</p>"
            f"<p><strong>Product:</strong> {escape(order['product_name'])}<br>"
            f"<strong>Quantity:</strong> {order['quantity']}<br>"
            f"<strong>Total Price:</strong> ${order['total']:.2f}<br>"
            f"<strong>Delivery Address:</strong> {escape(order['address'])}</p>"
        )
        notifier.send(order["buyer_email"], "Order Confirmation - PawMart", html)
        logger.info("Order confirmation email sent to %s", order["buyer_email"])
    except Exception:
        logger.exception("Failed to send order confirmation email to %s", order.get("buyer_email"))
