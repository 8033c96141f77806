"""Telebirr mobile-payment gateway adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

import requests
from cryptography.exceptions import UnsupportedAlgorithm
from requests.exceptions import RequestException

from config_models import TelebirrConfig
from signing import SIGNATURE_FIELD, sign_params, verify_params

logger = logging.getLogger("payments")


class TelebirrError(Exception):
    """Exception raised when the gateway rejects or cannot process a request."""

    pass


@dataclass(frozen=True)
class PaymentInitiation:
    prepay_id: str
    checkout_url: str


def format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount).quantize(Decimal('0.01'))}"


class TelebirrGateway:
    def __init__(self, config: TelebirrConfig):
        self.config = config

    @property
    def is_configured(self) -> bool:
        cfg = self.config
        return bool(cfg.enabled and cfg.api_base_url and cfg.app_key and cfg.short_code)

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "App-Key": self.config.app_key,
            "App-Secret": self.config.app_secret,
        }

    def build_payload(
        self, merchant_order_id: str, amount: Decimal, subject: str, return_url: str
    ) -> dict:
        payload = {
            "appKey": self.config.app_key,
            "shortCode": self.config.short_code,
            "notifyUrl": self.config.notify_url,
            "returnUrl": return_url or self.config.return_url,
            "merchantOrderId": merchant_order_id,
            "amount": format_amount(amount),
            "subject": subject,
        }
        if self.config.private_key:
            payload[SIGNATURE_FIELD] = sign_params(payload, self.config.private_key)
        return payload

    def create_payment(
        self,
        merchant_order_id: str,
        amount: Decimal,
        subject: str,
        return_url: str = "",
    ) -> PaymentInitiation:
        """Ask the gateway to open a checkout for one order.

        Returns:
            PaymentInitiation with the provider's prepay id and checkout URL.

        Raises:
            TelebirrError: the request could not be signed or sent, or the
                gateway rejected it.
        """
        if not self.is_configured:
            raise TelebirrError("Payment gateway is not configured")

        url = f"{self.config.api_base_url}/payment/initiate"
        try:
            payload = self.build_payload(merchant_order_id, amount, subject, return_url)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.error("Could not sign payment request for order %s: %s", merchant_order_id, e)
            raise TelebirrError("Payment request could not be signed")

        try:
            logger.info("Initiating payment for order %s (%s)", merchant_order_id, payload["amount"])
            response = requests.post(
                url, json=payload, headers=self._headers(), timeout=self.config.timeout
            )
            response.raise_for_status()
            body = response.json()

        except requests.exceptions.Timeout:
            logger.error("Timeout initiating payment for order %s", merchant_order_id)
            raise TelebirrError("Connection to payment gateway timed out")

        except requests.exceptions.ConnectionError as e:
            logger.error("Connection error for order %s: %s", merchant_order_id, e)
            raise TelebirrError("Could not connect to payment gateway")

        except requests.exceptions.HTTPError as e:
            logger.error("HTTP error for order %s: %s", merchant_order_id, e)
            raise TelebirrError(f"Payment gateway error: {e.response.status_code}")

        except RequestException as e:
            logger.error("Request error for order %s: %s", merchant_order_id, e)
            raise TelebirrError("Request to payment gateway failed")

        except ValueError:
            logger.error("Non-JSON response from gateway for order %s", merchant_order_id)
            raise TelebirrError("Invalid response from payment gateway")

        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            raise TelebirrError(message or "Payment creation failed")

        data = body.get("data") or {}
        prepay_id = data.get("prepay_id")
        if not prepay_id:
            raise TelebirrError("Payment gateway returned no prepay id")

        logger.info("Payment initiated for order %s (prepay %s)", merchant_order_id, prepay_id)
        return PaymentInitiation(
            prepay_id=str(prepay_id), checkout_url=data.get("checkoutUrl") or ""
        )

    def verify_notification(self, payload: Mapping) -> bool:
        """Check the provider signature on an inbound notification."""
        if not self.config.public_key:
            logger.error("Telebirr public key not configured, rejecting notification")
            return False
        return verify_params(payload, self.config.public_key)
