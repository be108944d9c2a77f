"""
TrustWrapper Input Security

Validation and sanitization applied to every decision before any analyzer
sees it, plus masking helpers for log payloads.
"""

import math
from typing import Any, Dict, List, Optional

from .errors import ValidationError
from .models import Decision

STRICT_ACTIONS = ("buy", "sell", "hold")
MAX_REASONING_LENGTH = 1000
MAX_STRATEGY_LENGTH = 500
MAX_ASSET_LENGTH = 32
MAX_ACTION_LENGTH = 64

# Identifiers that stay recognizable in logs; everything else is fully redacted
PARTIAL_MASK_FIELDS = ("signature", "nonce")

# Compared after lower-casing and dropping separators
SENSITIVE_METADATA_KEYS = {
    "privatekey", "secretkey", "seedphrase", "seed", "mnemonic",
    "password", "passphrase", "apikey", "apisecret", "secret", "apitoken", "accesstoken",
}


# ============================================================
# Validation
# ============================================================

def validate_string_length(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000
) -> str:
    """
    Validate string length after stripping whitespace.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    value = value.strip()
    if len(value) < min_length:
        raise ValidationError(field_name, "is required" if min_length == 1 else
                              f"must be at least {min_length} characters")
    if len(value) > max_length:
        raise ValidationError(field_name, f"must not exceed {max_length} characters")
    return value


def validate_positive_number(value: Any, field_name: str, max_value: Optional[float] = None) -> float:
    """
    Validate that a value is a finite, positive number.

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, "must be a number") from None

    if not math.isfinite(number):
        raise ValidationError(field_name, "must be finite")
    if number <= 0:
        raise ValidationError(field_name, "must be positive")
    if max_value is not None and number > max_value:
        raise ValidationError(field_name, f"must not exceed {max_value:g}")
    return number


def validate_decision(
    decision: Decision,
    strict: bool = True,
    max_amount: float = 1000000,
    max_leverage: float = 100
) -> None:
    """
    Fail fast on malformed decisions.

    Always: action and asset present, amount/leverage positive when given,
    other numeric fields finite. Strict mode adds an action whitelist and
    hard ceilings on amount and leverage.

    Raises:
        ValidationError: On the first problem found
    """
    if decision.action is None:
        raise ValidationError("action", "is required")
    action = validate_string_length(decision.action, "action", max_length=MAX_ACTION_LENGTH)

    if decision.asset is None:
        raise ValidationError("asset", "is required")
    validate_string_length(decision.asset, "asset", max_length=MAX_ASSET_LENGTH)

    ceilings = {"amount": max_amount, "leverage": max_leverage} if strict else {}
    for field_name in ("amount", "leverage"):
        value = getattr(decision, field_name)
        if value is not None:
            validate_positive_number(value, field_name, ceilings.get(field_name))

    for field_name in ("price", "stop_loss", "take_profit", "portfolio_size", "timeframe", "confidence"):
        value = getattr(decision, field_name)
        if value is not None and not math.isfinite(value):
            raise ValidationError(field_name, "must be finite")

    if strict and action.lower() not in STRICT_ACTIONS:
        raise ValidationError("action", f"must be one of {', '.join(STRICT_ACTIONS)}")


# ============================================================
# Sanitization
# ============================================================

def _normalize_key(key: str) -> str:
    return "".join(ch for ch in str(key).lower() if ch.isalnum())


def strip_sensitive_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys naming key material or credentials, recursively."""
    cleaned = {}
    for key, value in metadata.items():
        if _normalize_key(key) in SENSITIVE_METADATA_KEYS:
            continue
        if isinstance(value, dict):
            value = strip_sensitive_metadata(value)
        cleaned[key] = value
    return cleaned


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text[:limit]


def sanitize_decision(decision: Decision) -> Decision:
    """
    Normalize a validated decision.

    Action lower-cased, asset upper-cased, free text truncated, confidence
    clamped to [0, 100], sensitive metadata removed.
    """
    confidence = decision.confidence
    if confidence is not None:
        confidence = min(100.0, max(0.0, confidence))

    return decision.model_copy(update={
        "action": decision.action.strip().lower(),
        "asset": decision.asset.strip().upper(),
        "reasoning": _truncate(decision.reasoning, MAX_REASONING_LENGTH),
        "strategy": _truncate(decision.strategy, MAX_STRATEGY_LENGTH),
        "confidence": confidence,
        "metadata": strip_sensitive_metadata(decision.metadata),
    })


# ============================================================
# Audit Logging Helpers
# ============================================================

def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: List[str] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = ["signature", "nonce", "reasoning", "strategy", "metadata",
                            "private_key", "secret", "password", "api_key"]

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            if key in PARTIAL_MASK_FIELDS and isinstance(value, str) and len(value) > 8:
                result[key] = value[:4] + "..." + value[-4:]
            else:
                result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
