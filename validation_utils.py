"""
Input validation helpers shared by the API schemas and route handlers.

Covers the Indian identity and address formats the back office stores
(PAN, Aadhaar, pincode, mobile number) plus e-mail, and log sanitizing.
"""

import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)

PAN_PATTERN = re.compile(r'^[A-Z]{5}[0-9]{4}[A-Z]$')
# 12 digits, optionally grouped in fours, or the masked form shown in the UI
AADHAAR_PATTERN = re.compile(r'^(\d{12}|XXXX-XXXX-\d{4})$')
PINCODE_PATTERN = re.compile(r'^[1-9][0-9]{5}$')
PHONE_PATTERN = re.compile(r'^[6-9]\d{9}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class InputValidationError(ValueError):
    """Raised when input validation fails

    Attributes:
        field: The field that failed validation
        code: Error code for programmatic handling
        message: Human-readable error message
    """
    def __init__(self, message: str, field: str = "unknown", code: str = "VALIDATION_ERROR"):
        self.field = field
        self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"field": self.field, "code": self.code, "message": self.message}


def validate_pan(pan: str) -> str:
    """Validate a PAN (five letters, four digits, one letter) and return it upper-cased."""
    value = (pan or "").strip().upper()
    if not PAN_PATTERN.match(value):
        raise InputValidationError(
            "Invalid PAN format (expected e.g. ABCDE1234F)",
            field="panNumber",
            code="INVALID_PAN"
        )
    return value


def validate_aadhaar(aadhaar: str) -> str:
    """Validate an Aadhaar number. Whitespace between digit groups is ignored."""
    value = re.sub(r'\s', '', aadhaar or '')
    if not AADHAAR_PATTERN.match(value):
        raise InputValidationError(
            "Invalid Aadhaar format (expected 12 digits)",
            field="aadhaarNumber",
            code="INVALID_AADHAAR"
        )
    return value


def validate_pincode(pincode: str) -> str:
    value = (pincode or "").strip()
    if not PINCODE_PATTERN.match(value):
        raise InputValidationError(
            "Invalid pincode (expected 6 digits, not starting with 0)",
            field="pincode",
            code="INVALID_PINCODE"
        )
    return value


def validate_phone(phone: str) -> str:
    """Validate a 10-digit Indian mobile number. Spaces, dashes and a +91 prefix are tolerated."""
    value = re.sub(r'[\s\-]', '', phone or '')
    if value.startswith('+91'):
        value = value[3:]
    if not PHONE_PATTERN.match(value):
        raise InputValidationError(
            "Invalid phone number (expected 10 digits starting with 6-9)",
            field="phone",
            code="INVALID_PHONE"
        )
    return value


def validate_email(email: str) -> str:
    value = (email or "").strip()
    if not EMAIL_PATTERN.match(value):
        raise InputValidationError(
            "Invalid email address",
            field="email",
            code="INVALID_EMAIL"
        )
    return value


def validate_contact_details(contact_type: str, details: str) -> str:
    """Validate contact details against the contact's type (email or phone)."""
    if contact_type == "email":
        return validate_email(details)
    if contact_type == "phone":
        return validate_phone(details)
    raise InputValidationError(
        f"Unknown contact type: {contact_type}",
        field="type",
        code="INVALID_CONTACT_TYPE"
    )


def parse_id(raw: str, label: str = "ID") -> int:
    """
    Parse a path/query identifier.

    Raises:
        InputValidationError: If `raw` is not a positive integer
    """
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InputValidationError(f"Invalid {label}", field="id", code="INVALID_ID")
    if value <= 0:
        raise InputValidationError(f"Invalid {label}", field="id", code="INVALID_ID")
    return value


def parse_id_list(raw: Optional[str]) -> list:
    """Parse a comma-separated id list such as "1,2,3". Blank entries are skipped."""
    if not raw:
        return []
    return [parse_id(part.strip(), "client ID") for part in raw.split(",") if part.strip()]


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:500]
