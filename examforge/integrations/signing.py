"""HMAC signing of webhook payloads."""
import hashlib
import hmac
import json
from typing import Any, Dict, Union

SIGNATURE_PREFIX = "sha256="


def canonical_json(payload: Dict[str, Any]) -> str:
    """Serialize a payload deterministically for signing."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


class WebhookSigner:
    """HMAC-SHA256 signing and constant-time verification."""

    @staticmethod
    def sign(payload: str, secret: str) -> str:
        return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def verify(payload: str, signature: str, secret: str) -> bool:
        expected = WebhookSigner.sign(payload, secret).encode("utf-8")
        provided = signature.encode("utf-8")
        if len(provided) != len(expected):
            return False
        return hmac.compare_digest(expected, provided)


def verify_webhook_request(body: Union[bytes, str], signature_header: str, secret: str) -> bool:
    """Verify a delivered webhook body against its ``X-ExamForge-Signature`` header."""
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    payload.pop("signature", None)
    return WebhookSigner.verify(canonical_json(payload), signature_header[len(SIGNATURE_PREFIX):], secret)
