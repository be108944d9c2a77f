"""
TrustWrapper Error Taxonomy

All errors raised across the verification boundary derive from
TrustWrapperError and carry a sanitized message: any run of 32 or more
hexadecimal characters (keys, seeds, digests) is redacted before the
message is stored.
"""

import re
from typing import Optional

KEY_MATERIAL_PATTERN = re.compile(r'[a-fA-F0-9]{32,}')
REDACTED = "[REDACTED]"


def sanitize_message(message: str) -> str:
    """Redact anything that looks like key material from an error message."""
    return KEY_MATERIAL_PATTERN.sub(REDACTED, str(message))


class TrustWrapperError(Exception):
    """Base class for all TrustWrapper errors."""

    code = "TRUSTWRAPPER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = sanitize_message(message)
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class ValidationError(TrustWrapperError):
    """Raised when decision or context input is malformed or out of range."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self):
        d = super().to_dict()
        d["field"] = self.field
        return d


class ConfigurationError(TrustWrapperError):
    """Raised for invalid rule tables or engine configuration."""

    code = "CONFIGURATION_ERROR"


class CryptographicError(TrustWrapperError):
    """Raised when signing, key handling or decryption fails."""

    code = "CRYPTOGRAPHIC_ERROR"


class VerificationError(TrustWrapperError):
    """Raised when a verification cannot complete and degradation is disabled."""

    code = "VERIFICATION_ERROR"
