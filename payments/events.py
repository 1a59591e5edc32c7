"""
Webhook event parsing and signature checks.

Gateway payloads are loosely typed JSON. They are narrowed here into a
small set of known events; everything else becomes IgnoredEvent.
"""
import hashlib
import hmac
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

CHARGE_SUCCESS = 'charge.success'


@dataclass(frozen=True)
class ChargeSucceeded:
    reference: str
    order_id: Optional[uuid.UUID]
    amount_minor: Optional[int] = None
    paid_at: Optional[str] = None


@dataclass(frozen=True)
class IgnoredEvent:
    event_type: str


GatewayEvent = Union[ChargeSucceeded, IgnoredEvent]


def compute_signature(body: bytes, secret: str) -> str:
    """HMAC-SHA-512 hex digest of the raw request body."""
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def signature_matches(body: bytes, signature: str, secret: str) -> bool:
    expected = compute_signature(body, secret).encode()
    return hmac.compare_digest(expected, signature.strip().lower().encode('utf-8', 'replace'))


def _order_id_from(metadata: Any) -> Optional[uuid.UUID]:
    if not isinstance(metadata, dict):
        return None
    raw = metadata.get('order_id')
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def parse_event(payload: Dict[str, Any]) -> GatewayEvent:
    """
    Narrow a decoded webhook payload to a known event.

    A charge.success without a usable reference is ignored rather than
    rejected: the gateway would otherwise keep redelivering it.
    """
    if not isinstance(payload, dict):
        return IgnoredEvent(event_type='')

    event_type = str(payload.get('event') or '')
    data = payload.get('data')

    if event_type != CHARGE_SUCCESS or not isinstance(data, dict):
        return IgnoredEvent(event_type=event_type)

    reference = data.get('reference')
    if not isinstance(reference, str) or not reference:
        return IgnoredEvent(event_type=event_type)

    amount = data.get('amount')
    return ChargeSucceeded(
        reference=reference,
        order_id=_order_id_from(data.get('metadata')),
        amount_minor=amount if isinstance(amount, int) else None,
        paid_at=data.get('paid_at'),
    )
