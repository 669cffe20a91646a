"""Applicant PII masking for logs and stored history"""

import re
from typing import Dict, Any, Union, List


MASK = "***REDACTED***"

# Keys whose values are always fully masked (compared without _ and -)
SENSITIVE_KEYS = {
    'licensenumber', 'vin', 'dateofbirth', 'dob',
    'password', 'apikey', 'token', 'secret',
}

# Keys that keep a recognizable tail
PARTIAL_KEYS = {'email', 'phone'}


def mask_email(email: str) -> str:
    """jane.doe@example.com -> j***@example.com"""
    if not email or '@' not in email:
        return MASK
    local, domain = email.split('@', 1)
    return f"{local[:1]}***@{domain}"


def mask_phone(phone: str) -> str:
    """Keep only the last four digits"""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) < 4:
        return MASK
    return f"***-***-{digits[-4:]}"


def sanitize_pii(data: Union[str, Dict[str, Any], List]) -> Union[str, Dict[str, Any], List]:
    """
    Mask applicant PII in a request, record, or log string

    Dict keys decide how their values are masked; free text has embedded
    emails and phone numbers masked. Containers are copied, never mutated.
    """
    if isinstance(data, str):
        return _mask_free_text(data)
    if isinstance(data, dict):
        return {key: _mask_field(key, value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_pii(item) for item in data]
    return data


def _mask_field(key: Any, value: Any) -> Any:
    name = str(key).lower().replace('_', '').replace('-', '')
    if name in SENSITIVE_KEYS:
        return value if value in (None, '') else MASK
    if isinstance(value, str) and name in PARTIAL_KEYS:
        return mask_email(value) if name == 'email' else mask_phone(value)
    return sanitize_pii(value)


def _mask_free_text(text: str) -> str:
    if not text:
        return text
    text = re.sub(
        r'([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})',
        r'\1***@\2',
        text
    )
    return re.sub(r'\(?\b\d{3}\)?[\s.-]?\d{3}[\s.-]?(\d{4})\b', r'***-***-\1', text)
