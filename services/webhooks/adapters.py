"""
Provider-specific webhook adapters.

Each adapter verifies signatures with its provider's scheme and extracts
best-effort entity fields from the provider's payload shape. Adapters are
resolved from the registry by ``source``; unknown sources use the generic
adapter.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from database.models import WebhookConfig
from .entity_mapper import ExtractedEntity, map_payload
from .security import verify_hmac_base64, verify_hmac_hex, verify_timestamped_hmac, verify_token

# Header names probed for a signature, in order
SIGNATURE_HEADERS = (
    "Stripe-Signature",
    "Typeform-Signature",
    "Calendly-Webhook-Signature",
    "x-webhook-secret",
    "x-auth-token",
    "X-Webhook-Signature",
)


def signature_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """First signature header present. ``headers`` must be case-insensitive (as Starlette's are)."""
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class WebhookAdapter(ABC):
    """Signature verification and entity extraction for one provider."""

    source = "generic"

    def verify(self, raw_body: str, signature: Optional[str], secret: Optional[str], max_age_seconds: int) -> bool:
        """True when the delivery is authentic. Without a secret there is nothing to check."""
        if not secret:
            return True
        return self._verify(raw_body, signature, secret, max_age_seconds)

    @abstractmethod
    def _verify(self, raw_body: str, signature: Optional[str], secret: str, max_age_seconds: int) -> bool:
        ...

    @abstractmethod
    def extract(self, payload: Dict[str, Any], config: WebhookConfig) -> ExtractedEntity:
        ...

    def event_type(self, payload: Dict[str, Any]) -> str:
        return payload.get("event") or payload.get("type") or payload.get("event_type") or "unknown_event"

    def external_event_id(self, payload: Dict[str, Any]) -> Optional[str]:
        """Provider-assigned id identifying redeliveries of the same event."""
        value = payload.get("event_id")
        return str(value) if value else None


class StripeAdapter(WebhookAdapter):
    """``Stripe-Signature: t=<unix>,v1=<hex>`` over ``"{t}.{body}"``."""

    source = "stripe"

    def _verify(self, raw_body, signature, secret, max_age_seconds):
        return verify_timestamped_hmac(raw_body, signature, secret, max_age_seconds)

    def extract(self, payload, config):
        obj = _dig(payload, "data", "object")
        if not isinstance(obj, dict):
            obj = payload
        details = obj.get("customer_details") or {}

        amount_total = obj.get("amount_total")
        currency = (obj.get("currency") or "").upper()
        amount = None
        if amount_total:
            amount = f"{amount_total / 100:g} {currency}".strip()

        return ExtractedEntity(
            name=details.get("name") or obj.get("name"),
            email=details.get("email") or obj.get("email") or obj.get("customer_email"),
            entity_type="customer",
            metadata={
                "source": "stripe",
                "stripe_customer_id": obj.get("customer"),
                "payment_status": obj.get("payment_status"),
                "amount": amount,
                "event_id": payload.get("id"),
            },
        )

    def event_type(self, payload):
        return payload.get("type") or "unknown_stripe_event"

    def external_event_id(self, payload):
        value = payload.get("id")
        return str(value) if value else None


class CalendlyAdapter(WebhookAdapter):
    """``Calendly-Webhook-Signature: t=<unix>,v1=<hex>`` with replay protection."""

    source = "calendly"

    def _verify(self, raw_body, signature, secret, max_age_seconds):
        return verify_timestamped_hmac(raw_body, signature, secret, max_age_seconds)

    def extract(self, payload, config):
        invitee = _dig(payload, "payload", "invitee") or {}
        event = _dig(payload, "payload", "event") or {}
        event_type = _dig(payload, "payload", "event_type") or {}

        return ExtractedEntity(
            name=invitee.get("name"),
            email=invitee.get("email"),
            entity_type="lead",
            metadata={
                "source": "calendly",
                "event_type": payload.get("event"),
                "meeting_name": event_type.get("name"),
                "start_time": event.get("start_time"),
                "join_url": _dig(event, "location", "join_url"),
            },
        )

    def event_type(self, payload):
        return payload.get("event") or "unknown_calendly_event"

    def external_event_id(self, payload):
        value = _dig(payload, "payload", "invitee", "uri") or _dig(payload, "payload", "uri")
        return str(value) if value else None


class TypeformAdapter(WebhookAdapter):
    """``Typeform-Signature: sha256=<base64>`` over the raw body."""

    source = "typeform"

    def _verify(self, raw_body, signature, secret, max_age_seconds):
        return verify_hmac_base64(raw_body, signature, secret)

    def extract(self, payload, config):
        response = payload.get("form_response") or {}
        answers = response.get("answers") or []

        email = None
        name = None
        for answer in answers:
            if not isinstance(answer, dict):
                continue
            if email is None and answer.get("type") == "email":
                email = answer.get("email")
            if name is None and answer.get("type") == "text":
                field = answer.get("field") or {}
                label = f"{field.get('ref') or ''} {field.get('title') or ''}".lower()
                if "name" in label:
                    name = answer.get("text")

        return ExtractedEntity(
            name=name,
            email=email,
            entity_type="lead",
            metadata={
                "source": "typeform",
                "form_id": response.get("form_id"),
                "submitted_at": response.get("submitted_at"),
            },
        )

    def event_type(self, payload):
        return payload.get("event_type") or "form_response"

    def external_event_id(self, payload):
        value = payload.get("event_id") or _dig(payload, "form_response", "token")
        return str(value) if value else None


class N8nAdapter(WebhookAdapter):
    """Static shared token in ``x-webhook-secret`` or ``x-auth-token``."""

    source = "n8n"

    def _verify(self, raw_body, signature, secret, max_age_seconds):
        return verify_token(signature, secret)

    def extract(self, payload, config):
        mapped = map_payload(payload, config.entity_mapping)
        mapped.metadata.update({"source": "n8n", "execution_id": payload.get("executionId")})
        return mapped

    def event_type(self, payload):
        return payload.get("event") or payload.get("type") or "n8n_workflow_trigger"

    def external_event_id(self, payload):
        value = payload.get("executionId")
        return str(value) if value else None


class GenericAdapter(WebhookAdapter):
    """``X-Webhook-Signature`` hex HMAC-SHA256 over the raw body; fields from the config mapping."""

    source = "generic"

    def _verify(self, raw_body, signature, secret, max_age_seconds):
        return verify_hmac_hex(raw_body, signature, secret)

    def extract(self, payload, config):
        return map_payload(payload, config.entity_mapping)


GENERIC_ADAPTER = GenericAdapter()

ADAPTERS: Dict[str, WebhookAdapter] = {
    "stripe": StripeAdapter(),
    "calendly": CalendlyAdapter(),
    "typeform": TypeformAdapter(),
    "n8n": N8nAdapter(),
    "custom": GENERIC_ADAPTER,
    "manual": GENERIC_ADAPTER,
    "linkedin": GENERIC_ADAPTER,
}


def get_adapter(source: Optional[str]) -> WebhookAdapter:
    """Adapter for ``source``, falling back to the generic adapter."""
    return ADAPTERS.get((source or "").lower(), GENERIC_ADAPTER)
