"""Request validation and fraud heuristics

All checks run on the normalized payload dicts, before any model is built or
browser session opened. Each validate_* function returns a list of messages;
validate_request raises on the first failing group.
"""

import re
from datetime import date, datetime
from typing import Dict, Any, List, Optional
from loguru import logger

from src.funnel.errors import SuspiciousDataError, ValidationError


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\d{10}$')
ZIP_PATTERN = re.compile(r'^\d{5}$')
ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

GENDER_CODES = ('M', 'F', 'X')
MARITAL_CODES = ('M', 'S', 'D', 'W', 'E')
LICENSE_STATUS_CODES = ('V', 'E', 'S', 'R')
RELATIONSHIP_CODES = ('S', 'C', 'R', 'N', 'P')

TEST_EMAILS = (
    'test@test.com', 'fake@fake.com', 'example@example.com',
    'admin@admin.com', 'noreply@noreply.com',
)
FAKE_NAMES = ('test', 'fake', 'admin', 'user', 'demo')
FAKE_PHONES = ('1234567890', '0000000000')

# (label, camelCase key, snake_case key)
REQUIRED_APPLICANT_FIELDS = [
    ('First Name', 'firstName', 'first_name'),
    ('Last Name', 'lastName', 'last_name'),
    ('Address', 'address', 'address'),
    ('City', 'city', 'city'),
    ('State', 'state', 'state'),
    ('Zip Code', 'zipCode', 'zip_code'),
    ('Email', 'email', 'email'),
    ('Phone', 'phone', 'phone'),
]


def _get(data: Dict[str, Any], camel: str, snake: Optional[str] = None) -> str:
    """Field value as a stripped string, accepting either key style"""
    value = data.get(camel)
    if value is None and snake:
        value = data.get(snake)
    if value is None:
        return ''
    return str(value).strip()


def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


def parse_iso_date(value: str) -> Optional[date]:
    """YYYY-MM-DD as a real calendar date, None when malformed or impossible"""
    if not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        return None


def validate_applicant(data: Dict[str, Any]) -> List[str]:
    """Required fields plus email, phone and zip formats"""
    errors = []
    for label, camel, snake in REQUIRED_APPLICANT_FIELDS:
        if not _get(data, camel, snake):
            errors.append(f"{label} is required")

    email = _get(data, 'email')
    if email and not EMAIL_PATTERN.match(email):
        errors.append('Invalid email format')

    phone = _get(data, 'phone')
    if phone and not PHONE_PATTERN.match(_digits(phone)):
        errors.append('Phone must be 10 digits')

    zip_code = _get(data, 'zipCode', 'zip_code')
    if zip_code and not ZIP_PATTERN.match(zip_code):
        errors.append('Zip code must be 5 digits')

    return errors


def validate_vehicle(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not isinstance(data, dict):
        return ['Vehicle data is required and must be an object']

    try:
        year = int(_get(data, 'year'))
    except ValueError:
        year = None
    if year is None or year < 1900 or year > datetime.now().year + 1:
        errors.append('Valid vehicle year is required')

    if not _get(data, 'make'):
        errors.append('Vehicle make is required')
    if not _get(data, 'model'):
        errors.append('Vehicle model is required')
    return errors


def validate_driver(data: Dict[str, Any]) -> List[str]:
    """Driver fields are optional, but supplied ones must be well formed"""
    if not isinstance(data, dict):
        return ['Driver data is required and must be an object']

    errors = []
    first_name = _get(data, 'firstName', 'first_name')
    if first_name and len(first_name) < 2:
        errors.append('Driver first name must be at least 2 characters')

    last_name = _get(data, 'lastName', 'last_name')
    if last_name and len(last_name) < 2:
        errors.append('Driver last name must be at least 2 characters')

    dob = _get(data, 'dateOfBirth', 'date_of_birth')
    if dob and parse_iso_date(dob) is None:
        errors.append('Driver date of birth must be a valid date in YYYY-MM-DD format')

    gender = _get(data, 'gender')
    if gender and gender not in GENDER_CODES:
        errors.append('Driver gender must be M, F, or X')

    marital = _get(data, 'maritalStatus', 'marital_status')
    if marital and marital not in MARITAL_CODES:
        errors.append('Driver marital status must be M, S, D, W, or E')

    license_state = _get(data, 'licenseState', 'license_state')
    if license_state and len(license_state) != 2:
        errors.append('Driver license state must be a 2-character state code')

    license_status = _get(data, 'licenseStatus', 'license_status')
    if license_status and license_status not in LICENSE_STATUS_CODES:
        errors.append('Driver license status must be V, E, S, or R')

    relationship = _get(data, 'relationship')
    if relationship and relationship not in RELATIONSHIP_CODES:
        errors.append(
            'Driver relationship must be S (Spouse), C (Child), R (Other Related), '
            'N (Other Non-Related), or P (Parent)'
        )
    return errors


def validate_policy(data: Dict[str, Any]) -> List[str]:
    if not isinstance(data, dict):
        return ['Policy data must be an object']

    errors = []
    start_date = _get(data, 'startDate', 'start_date')
    if start_date and parse_iso_date(start_date) is None:
        errors.append('Policy start date must be a valid date in YYYY-MM-DD format')

    quote_index = data.get('selectQuoteIndex', data.get('select_quote_index'))
    if quote_index is not None and (isinstance(quote_index, bool) or not str(quote_index).isdigit()):
        errors.append('Quote selection index must be a non-negative integer')
    return errors


def detect_fraud(data: Dict[str, Any]) -> List[str]:
    """Heuristic indicators of test or fabricated submissions"""
    indicators = []

    if _get(data, 'email').lower() in TEST_EMAILS:
        indicators.append('Test email detected')

    first_name = _get(data, 'firstName', 'first_name').lower()
    last_name = _get(data, 'lastName', 'last_name').lower()
    if first_name and first_name == last_name:
        indicators.append('First name same as last name')

    if first_name in FAKE_NAMES or last_name in FAKE_NAMES:
        indicators.append('Suspicious name detected')

    if _digits(_get(data, 'phone')) in FAKE_PHONES:
        indicators.append('Invalid phone number pattern')

    return indicators


def validate_request(request: Dict[str, Any], first_step_only: bool = False):
    """
    Validate a normalized request in the order applicant, vehicles, drivers,
    policy, then fraud heuristics on the applicant.

    Args:
        request: Output of normalize_payload
        first_step_only: Only the applicant is needed (Personal Info only runs)

    Raises:
        ValidationError: first failing group, with its step
        SuspiciousDataError: fraud indicators found
    """
    errors = validate_applicant(request.get('applicant') or {})
    if errors:
        raise ValidationError(errors, step='user_validation_failed')

    if not first_step_only:
        _validate_run_data(request)

    indicators = detect_fraud(request.get('applicant') or {})
    if indicators:
        logger.warning(f"Fraud indicators on submission: {indicators}")
        raise SuspiciousDataError(indicators)


def _validate_run_data(request: Dict[str, Any]):
    vehicles = request.get('vehicles') or []
    if not vehicles:
        raise ValidationError(['At least one vehicle is required'], step='vehicle_validation_failed')
    for index, vehicle in enumerate(vehicles):
        errors = validate_vehicle(vehicle)
        if errors:
            raise ValidationError(errors, message=f"Vehicle {index + 1} is invalid", step='vehicle_validation_failed')

    for index, driver in enumerate(request.get('drivers') or []):
        errors = validate_driver(driver)
        if errors:
            raise ValidationError(errors, message=f"Driver {index + 1} is invalid", step='driver_validation_failed')

    errors = validate_policy(request.get('policy') or {})
    if errors:
        raise ValidationError(errors, message="Policy preferences are invalid", step='policy_validation_failed')
