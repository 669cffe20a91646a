"""Payload normalization

Accepts either the current shape {applicant, vehicles, drivers, policy} or the
legacy one {userData, vehicleData, driverData, vehicles?, drivers?, policyInfo}
and produces the current shape. Models are built only after validation.
"""

from typing import Dict, Any, List, NamedTuple
from loguru import logger
from pydantic import ValidationError as ModelValidationError

from src.funnel.errors import ValidationError
from src.funnel.models import ApplicantProfile, DriverRecord, PolicyPreferences, VehicleRecord


class RunInput(NamedTuple):
    applicant: ApplicantProfile
    vehicles: List[VehicleRecord]
    drivers: List[DriverRecord]
    policy: PolicyPreferences


def _as_list(many: Any, single: Any) -> List[Any]:
    if isinstance(many, list):
        return list(many)
    if single:
        return [single]
    return []


def normalize_payload(payload: Any) -> Dict[str, Any]:
    """
    Convert a caller payload to {applicant, vehicles, drivers, policy}.

    Single vehicle/driver records become one-element lists. When no drivers are
    supplied the applicant doubles as the primary driver.

    Raises:
        ValidationError: payload is not a JSON object
    """
    if not isinstance(payload, dict):
        raise ValidationError(['Request body must be a JSON object'])

    legacy = 'userData' in payload
    applicant = payload.get('applicant') if not legacy else payload.get('userData')
    vehicles = _as_list(payload.get('vehicles'), payload.get('vehicleData'))
    drivers = _as_list(payload.get('drivers'), payload.get('driverData'))
    policy = payload.get('policy') or payload.get('policyInfo') or {}

    if not drivers and isinstance(applicant, dict):
        drivers = [dict(applicant)]
        logger.debug("No drivers supplied; applicant used as primary driver")

    if legacy:
        logger.info(f"Normalized legacy payload: {len(vehicles)} vehicle(s), {len(drivers)} driver(s)")

    return {
        'applicant': applicant if isinstance(applicant, dict) else {},
        'vehicles': vehicles,
        'drivers': drivers,
        'policy': policy if isinstance(policy, dict) else {},
    }


def _model_errors(error: ModelValidationError, prefix: str) -> List[str]:
    messages = []
    for detail in error.errors():
        location = '.'.join(str(part) for part in detail.get('loc', ()))
        messages.append(f"{prefix}{'.' + location if location else ''}: {detail.get('msg', 'invalid')}")
    return messages


def build_run_input(request: Dict[str, Any]) -> RunInput:
    """
    Build immutable run models from a validated, normalized request

    Raises:
        ValidationError: a field failed model validation
    """
    errors: List[str] = []

    def build(model, data, prefix):
        try:
            return model.model_validate(data)
        except ModelValidationError as e:
            errors.extend(_model_errors(e, prefix))
            return None

    applicant = build(ApplicantProfile, request['applicant'], 'applicant')
    vehicles = [build(VehicleRecord, v, f'vehicles[{i}]') for i, v in enumerate(request['vehicles'])]
    drivers = [build(DriverRecord, d, f'drivers[{i}]') for i, d in enumerate(request['drivers'])]
    policy = build(PolicyPreferences, request['policy'], 'policy')

    if errors:
        raise ValidationError(errors)
    return RunInput(applicant, vehicles, drivers, policy)
