"""
M-Pesa Daraja client: OAuth token exchange, STK push and callback parsing.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import requests

import config

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
# Daraja expects the STK timestamp in Kenyan local time
NAIROBI = ZoneInfo("Africa/Nairobi")


class MpesaClient:
    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        paybill: str,
        callback_url: str,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.paybill = paybill or shortcode
        self.callback_url = callback_url
        self.timeout = timeout
        self._token_cache: Dict[str, Any] = {"access_token": None, "expires_at": None}

    def get_access_token(self) -> Optional[str]:
        now = datetime.now(timezone.utc)
        if (
            self._token_cache["access_token"]
            and self._token_cache["expires_at"]
            and self._token_cache["expires_at"] > now + timedelta(seconds=30)
        ):
            return self._token_cache["access_token"]

        auth = base64.b64encode(f"{self.consumer_key}:{self.consumer_secret}".encode()).decode()
        try:
            response = requests.get(
                f"{self.base_url}{TOKEN_PATH}",
                headers={"Authorization": f"Basic {auth}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Error getting access token: %s", exc)
            return None

        access_token = data.get("access_token")
        if not access_token:
            logger.error("Token response carried no access_token: %s", data)
            return None
        expires_in = int(data.get("expires_in", 3599))
        self._token_cache["access_token"] = access_token
        self._token_cache["expires_at"] = now + timedelta(seconds=expires_in)
        return access_token

    def password(self, timestamp: str) -> str:
        return base64.b64encode(f"{self.shortcode}{self.passkey}{timestamp}".encode()).decode()

    def stk_push(self, amount: float, phone_number: str, account_reference: str) -> Optional[dict]:
        """Send an STK push prompt to the payer's phone. Returns the gateway payload or None."""
        token = self.get_access_token()
        if not token:
            logger.error("Failed to obtain access token")
            return None

        timestamp = datetime.now(NAIROBI).strftime("%Y%m%d%H%M%S")
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": self.password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(round(amount)),
            "PartyA": phone_number,
            "PartyB": self.paybill,
            "PhoneNumber": phone_number,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": f"Payment for {account_reference}",
        }
        try:
            response = requests.post(
                f"{self.base_url}{STK_PUSH_PATH}",
                json=payload,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Error initiating payment: %s", exc)
            return None


def parse_stk_callback(body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Flatten a Daraja STK callback into
    {checkout_request_id, merchant_request_id, result_code, result_desc, metadata}.
    Returns None when the body is not an STK callback.
    """
    if not isinstance(body, dict):
        return None
    callback = (body.get("Body") or {}).get("stkCallback")
    if not isinstance(callback, dict) or not callback.get("CheckoutRequestID"):
        return None

    metadata = {}
    for item in (callback.get("CallbackMetadata") or {}).get("Item", []) or []:
        if isinstance(item, dict) and "Name" in item:
            metadata[item["Name"]] = item.get("Value")

    try:
        result_code = int(callback.get("ResultCode"))
    except (TypeError, ValueError):
        result_code = None

    return {
        "checkout_request_id": callback["CheckoutRequestID"],
        "merchant_request_id": callback.get("MerchantRequestID"),
        "result_code": result_code,
        "result_desc": callback.get("ResultDesc"),
        "metadata": metadata,
    }


_client: Optional[MpesaClient] = None


def get_gateway() -> MpesaClient:
    global _client
    if _client is None:
        _client = MpesaClient(
            base_url=config.MPESA_BASE_URL,
            consumer_key=config.MPESA_CONSUMER_KEY,
            consumer_secret=config.MPESA_CONSUMER_SECRET,
            shortcode=config.MPESA_SHORTCODE,
            passkey=config.MPESA_PASSKEY,
            paybill=config.MPESA_PAYBILL,
            callback_url=config.MPESA_CALLBACK_URL,
            timeout=config.MPESA_TIMEOUT,
        )
    return _client
