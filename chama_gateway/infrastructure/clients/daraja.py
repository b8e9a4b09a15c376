"""Safaricom Daraja HTTP client for STK push (Lipa na M-Pesa Online)"""

import base64
import httpx
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from datetime import datetime

from chama_gateway.config import settings
from chama_gateway.domain.models import PushAcknowledgement
from chama_gateway.domain.exceptions import GatewayAuthError, GatewayRequestError, GatewayUnavailable
from chama_gateway.infrastructure.observability.metrics import gateway_latency_histogram
from chama_gateway.utils.date_utils import gateway_timestamp, now_eat

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"


class DarajaClient:
    """Client for the M-Pesa Daraja API; every push re-authenticates"""

    def __init__(
        self,
        base_url: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        passkey: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = now_eat,
    ):
        self.base_url = (base_url or settings.mpesa_base_url).rstrip("/")
        self.consumer_key = consumer_key or settings.mpesa_consumer_key
        self.consumer_secret = consumer_secret or settings.mpesa_consumer_secret
        self.passkey = passkey or settings.mpesa_passkey
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport
        self.clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def password(self, short_code: str, timestamp: str) -> str:
        """base64(shortcode + passkey + timestamp) as required by STK push"""
        raw = f"{short_code}{self.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("utf-8")

    async def authenticate(self) -> str:
        """
        Exchange consumer key/secret for a short-lived bearer token.

        Raises:
            GatewayAuthError: Non-2xx response or no access_token in payload
            GatewayUnavailable: Timeout or transport failure
        """
        async with self._client() as client:
            return await self._authenticate(client)

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        try:
            with gateway_latency_histogram.labels(operation="authenticate").time():
                response = await client.get(
                    TOKEN_PATH,
                    params={"grant_type": "client_credentials"},
                    auth=(self.consumer_key, self.consumer_secret),
                )
            response.raise_for_status()
            token = response.json().get("access_token")

        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"M-Pesa auth timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise GatewayAuthError(f"M-Pesa auth rejected: {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise GatewayUnavailable(f"M-Pesa auth unreachable: {type(e).__name__}") from e
        except (ValueError, AttributeError) as e:
            raise GatewayAuthError("M-Pesa auth returned an invalid payload") from e

        if not token or not isinstance(token, str):
            raise GatewayAuthError("M-Pesa auth returned no access token")
        return token

    async def request_push(
        self,
        phone: str,
        amount: Decimal,
        short_code: str,
        reference: str,
        callback_url: str,
        description: str = "Chama Contribution",
    ) -> PushAcknowledgement:
        """
        Send an STK push prompt to the payer's phone.

        Args:
            phone: Payer phone in international format (2547XXXXXXXX)
            amount: Whole shillings

        Returns:
            Acknowledgement carrying the CheckoutRequestID used to correlate
            the later callback. It means the prompt was sent, not that money
            was received.

        Raises:
            GatewayAuthError: Token exchange failed
            GatewayRequestError: Gateway refused the push
            GatewayUnavailable: Timeout or transport failure
        """
        async with self._client() as client:
            token = await self._authenticate(client)

            timestamp = gateway_timestamp(self.clock())
            payload = {
                "BusinessShortCode": short_code,
                "Password": self.password(short_code, timestamp),
                "Timestamp": timestamp,
                "TransactionType": "CustomerPayBillOnline",
                "Amount": int(amount),
                "PartyA": phone,
                "PartyB": short_code,
                "PhoneNumber": phone,
                "CallBackURL": callback_url,
                "AccountReference": reference,
                "TransactionDesc": description,
            }

            try:
                with gateway_latency_histogram.labels(operation="stk_push").time():
                    response = await client.post(
                        STK_PUSH_PATH,
                        json=payload,
                        headers={"Authorization": f"Bearer {token}"},
                    )
            except httpx.TimeoutException as e:
                # The prompt may still reach the payer; this is not a payment failure
                raise GatewayUnavailable(f"M-Pesa STK push timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                raise GatewayUnavailable(f"M-Pesa STK push unreachable: {type(e).__name__}") from e

        return self._parse_push_response(response)

    @staticmethod
    def _parse_push_response(response: httpx.Response) -> PushAcknowledgement:
        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            if response.status_code >= 500:
                raise GatewayUnavailable(f"M-Pesa STK push error: {response.status_code}") from e
            raise GatewayRequestError(f"Unexpected M-Pesa response: {response.status_code}") from e

        if not isinstance(data, dict):
            raise GatewayRequestError(f"Unexpected M-Pesa response: {response.status_code}")

        if str(data.get("ResponseCode")) == "0" and data.get("CheckoutRequestID"):
            return PushAcknowledgement(
                checkout_request_id=data["CheckoutRequestID"],
                merchant_request_id=data.get("MerchantRequestID"),
                customer_message=data.get("CustomerMessage") or data.get("ResponseDescription") or "",
            )

        message: Optional[str] = (
            data.get("errorMessage")
            or data.get("ResponseDescription")
            or data.get("ResultDesc")
        )
        raise GatewayRequestError(message or "STK push failed")
