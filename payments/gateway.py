"""
Paystack gateway client.

Wraps the two calls the payment flow needs:
    - initialize: open a hosted checkout session for an amount
    - verify: look up a transaction's status by reference

The gateway speaks minor currency units (kobo); the order ledger speaks
major units. Conversion happens here and nowhere else.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from django.conf import settings
from django.utils.dateparse import parse_datetime

from .exceptions import GatewayUnavailable, TransactionNotFound

logger = logging.getLogger(__name__)

MINOR_UNITS_PER_MAJOR = 100

TRANSACTION_SUCCESS = 'success'


def to_minor_units(amount: Decimal) -> int:
    """65000.00 -> 6500000"""
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int) -> Decimal:
    """6500000 -> Decimal('65000.00')"""
    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(Decimal('0.01'))


@dataclass(frozen=True)
class InitializedTransaction:
    authorization_url: str
    access_code: str
    reference: str


@dataclass(frozen=True)
class VerifiedTransaction:
    status: str
    amount_minor: int
    reference: str
    paid_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == TRANSACTION_SUCCESS

    @property
    def amount(self) -> Decimal:
        return to_major_units(self.amount_minor)


class PaystackClient:
    """
    Synchronous Paystack API client.

    Every call carries a bounded timeout. Anything other than a clean,
    successful envelope raises; no call is retried here.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        if not self.secret_key:
            raise GatewayUnavailable("Paystack secret key not configured")
        self.base_url = base_url or settings.PAYSTACK_BASE_URL
        self.timeout = timeout if timeout is not None else settings.PAYSTACK_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                'Authorization': f'Bearer {self.secret_key}',
                'Content-Type': 'application/json',
            },
            transport=self._transport,
        )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            with self._client() as client:
                response = client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Paystack {method} {path} timed out after {self.timeout}s")
            raise GatewayUnavailable(f"Payment gateway timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise GatewayUnavailable(f"Payment gateway unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = payload.get('message', '') if isinstance(payload, dict) else ''
            logger.error(f"Paystack {method} {path} returned {response.status_code}: {message}")
            raise _GatewayHTTPError(response.status_code, message)

        if not isinstance(payload, dict) or not isinstance(payload.get('data'), dict):
            logger.error(f"Paystack {method} {path} returned a malformed body")
            raise GatewayUnavailable("Malformed response from payment gateway")

        if not payload.get('status'):
            message = payload.get('message') or 'Payment gateway rejected the request'
            logger.error(f"Paystack {method} {path} rejected: {message}")
            raise GatewayUnavailable(message)

        return payload['data']

    def initialize(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> InitializedTransaction:
        """Open a hosted checkout session."""
        body = {
            'email': email,
            'amount': amount_minor,
            'reference': reference,
            'metadata': metadata or {},
        }
        if callback_url:
            body['callback_url'] = callback_url

        try:
            data = self._request('POST', '/transaction/initialize', json=body)
        except _GatewayHTTPError as e:
            raise GatewayUnavailable(e.message or 'Failed to initialize payment') from e

        try:
            return InitializedTransaction(
                authorization_url=data['authorization_url'],
                access_code=data.get('access_code', ''),
                reference=data['reference'],
            )
        except KeyError as e:
            raise GatewayUnavailable(f"Gateway response missing {e}") from e

    def verify(self, reference: str) -> VerifiedTransaction:
        """
        Look up a transaction by reference.

        Raises:
            TransactionNotFound: Gateway has no such reference
            GatewayUnavailable: Network, timeout, non-2xx or malformed response
        """
        try:
            data = self._request('GET', f'/transaction/verify/{quote(reference, safe="")}')
        except _GatewayHTTPError as e:
            if e.status_code == 404 or (e.status_code == 400 and 'not found' in e.message.lower()):
                raise TransactionNotFound(reference) from e
            raise GatewayUnavailable(e.message or 'Failed to verify payment') from e

        try:
            amount_minor = int(data['amount'])
            status = str(data['status'])
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayUnavailable(f"Malformed transaction in gateway response: {e}") from e

        paid_at = data.get('paid_at') or data.get('paidAt')
        metadata = data.get('metadata')

        return VerifiedTransaction(
            status=status,
            amount_minor=amount_minor,
            reference=data.get('reference') or reference,
            paid_at=parse_datetime(paid_at) if isinstance(paid_at, str) else None,
            metadata=metadata if isinstance(metadata, dict) else {},
        )


class _GatewayHTTPError(Exception):
    """Non-2xx response, mapped by each call to a public exception."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message or ''
        super().__init__(f"HTTP {status_code}: {message}")


def get_gateway_client() -> PaystackClient:
    return PaystackClient()
