"""Unit tests for request validation and payload normalization"""

import copy
import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from src.funnel.errors import SuspiciousDataError, ValidationError
from src.intake.normalize import build_run_input, normalize_payload
from src.intake.validator import (
    detect_fraud,
    validate_applicant,
    parse_iso_date,
    validate_driver,
    validate_policy,
    validate_request,
    validate_vehicle,
)

APPLICANT = {
    "firstName": "Jane",
    "lastName": "Doe",
    "address": "123 Main St",
    "city": "Los Angeles",
    "state": "CA",
    "zipCode": "90001",
    "email": "jane.doe@gmail.com",
    "phone": "(310) 555-1234",
}


class TestApplicantValidation:
    """Test applicant field checks"""

    def test_valid_applicant(self):
        """Test a complete applicant passes"""
        assert validate_applicant(APPLICANT) == []

    def test_missing_email(self):
        """Test the required-field message for email"""
        data = {k: v for k, v in APPLICANT.items() if k != "email"}
        assert validate_applicant(data) == ["Email is required"]

    def test_blank_fields_are_missing(self):
        """Test whitespace-only values count as missing"""
        data = dict(APPLICANT, firstName="  ", city="")
        assert validate_applicant(data) == ["First Name is required", "City is required"]

    def test_format_checks(self):
        """Test email, phone and zip formats"""
        data = dict(APPLICANT, email="jane@", phone="555-1234", zipCode="9000")
        assert validate_applicant(data) == [
            "Invalid email format",
            "Phone must be 10 digits",
            "Zip code must be 5 digits",
        ]

    def test_snake_case_keys_accepted(self):
        """Test snake_case field names satisfy required checks"""
        data = dict(APPLICANT)
        data["first_name"] = data.pop("firstName")
        data["zip_code"] = data.pop("zipCode")
        assert validate_applicant(data) == []


class TestVehicleAndDriverValidation:
    """Test vehicle and driver checks"""

    def test_vehicle_year_bounds(self):
        """Test year must be a number in range"""
        assert validate_vehicle({"year": 2020, "make": "Honda", "model": "Civic"}) == []
        assert validate_vehicle({"year": "1899", "make": "Honda", "model": "Civic"}) == [
            "Valid vehicle year is required"
        ]
        assert validate_vehicle({"year": "abc", "make": "", "model": "Civic"}) == [
            "Valid vehicle year is required",
            "Vehicle make is required",
        ]

    def test_driver_codes(self):
        """Test driver code fields are checked only when supplied"""
        assert validate_driver({}) == []
        errors = validate_driver({
            "dateOfBirth": "05/15/1990",
            "gender": "Male",
            "maritalStatus": "Q",
            "licenseState": "Calif",
            "licenseStatus": "Z",
            "relationship": "X",
        })
        assert errors[0] == "Driver date of birth must be a valid date in YYYY-MM-DD format"
        assert "Driver gender must be M, F, or X" in errors
        assert len(errors) == 6

    def test_driver_must_be_object(self):
        """Test a non-object driver entry"""
        assert validate_driver("Jane") == ["Driver data is required and must be an object"]

    @pytest.mark.parametrize("dob", ["1990-02-30", "1990-13-01", "1991-02-29", "1990-5-15"])
    def test_impossible_birth_dates_rejected(self, dob):
        """Test a well-shaped but non-existent date is rejected"""
        assert validate_driver({"dateOfBirth": dob}) == [
            "Driver date of birth must be a valid date in YYYY-MM-DD format"
        ]

    def test_leap_day_accepted(self):
        """Test a real leap day passes"""
        assert validate_driver({"dateOfBirth": "1992-02-29"}) == []


class TestPolicyValidation:
    """Test policy preference checks"""

    def test_valid_policy(self):
        """Test supplied fields in the expected formats pass"""
        assert validate_policy({"startDate": "2026-11-01", "selectQuoteIndex": 0}) == []
        assert validate_policy({}) == []

    def test_start_date_format(self):
        """Test a locale-formatted start date is rejected"""
        assert validate_policy({"startDate": "03/01/2026"}) == [
            "Policy start date must be a valid date in YYYY-MM-DD format"
        ]
        assert validate_policy({"startDate": "2026-02-30"}) == [
            "Policy start date must be a valid date in YYYY-MM-DD format"
        ]

    def test_quote_index(self):
        """Test the selection index must be a non-negative integer"""
        assert validate_policy({"selectQuoteIndex": "1"}) == []
        assert validate_policy({"selectQuoteIndex": -1}) == ["Quote selection index must be a non-negative integer"]
        assert validate_policy({"selectQuoteIndex": True}) == ["Quote selection index must be a non-negative integer"]

    def test_parse_iso_date(self):
        """Test ISO parsing returns a date only for real dates"""
        assert parse_iso_date("2026-11-01").isoformat() == "2026-11-01"
        assert parse_iso_date("2026-11-31") is None
        assert parse_iso_date("11/01/2026") is None


class TestFraudDetection:
    """Test fraud heuristics"""

    def test_clean_applicant(self):
        """Test a realistic applicant has no indicators"""
        assert detect_fraud(APPLICANT) == []

    def test_indicators(self):
        """Test each heuristic"""
        data = dict(APPLICANT, email="TEST@test.com", firstName="Test", lastName="test", phone="123-456-7890")
        assert detect_fraud(data) == [
            "Test email detected",
            "First name same as last name",
            "Suspicious name detected",
            "Invalid phone number pattern",
        ]

    def test_missing_names_not_flagged_as_equal(self):
        """Test absent names are not reported as identical"""
        data = {k: v for k, v in APPLICANT.items() if k not in ("firstName", "lastName")}
        assert "First name same as last name" not in detect_fraud(data)


class TestValidateRequest:
    """Test whole-request validation order and steps"""

    def request(self, **overrides):
        base = {
            "applicant": dict(APPLICANT),
            "vehicles": [{"year": 2020, "make": "Honda", "model": "Civic"}],
            "drivers": [{"dateOfBirth": "1990-05-15"}],
            "policy": {},
        }
        base.update(overrides)
        return base

    def test_valid(self):
        """Test a valid request passes silently"""
        validate_request(self.request())

    def test_applicant_errors_first(self):
        """Test applicant problems are reported with the user step"""
        with pytest.raises(ValidationError) as exc_info:
            validate_request(self.request(applicant=dict(APPLICANT, email=""), vehicles=[]))
        assert exc_info.value.errors == ["Email is required"]
        assert exc_info.value.step == "user_validation_failed"

    def test_vehicle_required(self):
        """Test at least one vehicle is needed"""
        with pytest.raises(ValidationError) as exc_info:
            validate_request(self.request(vehicles=[]))
        assert exc_info.value.step == "vehicle_validation_failed"

    def test_impossible_birth_date_stops_request(self):
        """Test a non-existent date of birth is a driver validation failure"""
        with pytest.raises(ValidationError) as exc_info:
            validate_request(self.request(drivers=[{"dateOfBirth": "1990-02-30"}]))
        assert exc_info.value.step == "driver_validation_failed"

    def test_policy_errors(self):
        """Test policy problems are reported with the policy step"""
        with pytest.raises(ValidationError) as exc_info:
            validate_request(self.request(policy={"startDate": "03/01/2026"}))
        assert exc_info.value.step == "policy_validation_failed"
        assert str(exc_info.value).startswith("Policy preferences are invalid")

    def test_first_step_only_needs_applicant(self):
        """Test Personal-Info-only requests skip vehicle, driver and policy checks"""
        validate_request(self.request(vehicles=[], policy={"startDate": "bad"}), first_step_only=True)

        with pytest.raises(SuspiciousDataError):
            validate_request(self.request(applicant=dict(APPLICANT, email="test@test.com")), first_step_only=True)

    def test_fraud_raises_suspicious(self):
        """Test fraud indicators raise SuspiciousDataError"""
        with pytest.raises(SuspiciousDataError) as exc_info:
            validate_request(self.request(applicant=dict(APPLICANT, email="fake@fake.com")))
        assert exc_info.value.step == "fraud_detection_failed"
        assert str(exc_info.value).startswith("Suspicious data detected")


class TestNormalizePayload:
    """Test legacy and current payload shapes"""

    def test_current_shape_passes_through(self):
        """Test the current shape is kept"""
        payload = {"applicant": APPLICANT, "vehicles": [{"year": 2020}], "drivers": [{"gender": "F"}], "policy": {"a": 1}}
        request = normalize_payload(payload)

        assert request["applicant"] == APPLICANT
        assert request["drivers"] == [{"gender": "F"}]
        assert request["policy"] == {"a": 1}

    def test_legacy_single_records(self):
        """Test legacy single vehicle/driver records become lists"""
        payload = {
            "userData": APPLICANT,
            "vehicleData": {"year": 2019, "make": "Ford", "model": "Focus"},
            "driverData": {"gender": "F"},
            "policyInfo": {"contactMethod": "email"},
        }
        request = normalize_payload(payload)

        assert request["applicant"] == APPLICANT
        assert request["vehicles"] == [{"year": 2019, "make": "Ford", "model": "Focus"}]
        assert request["drivers"] == [{"gender": "F"}]
        assert request["policy"] == {"contactMethod": "email"}

    def test_applicant_becomes_primary_driver(self):
        """Test the applicant doubles as driver 0 when no drivers are given"""
        payload = {"userData": copy.deepcopy(APPLICANT), "vehicles": []}
        request = normalize_payload(payload)

        assert request["drivers"] == [APPLICANT]
        assert request["drivers"][0] is not request["applicant"]

    def test_arrays_win_over_single_records(self):
        """Test vehicles[] takes precedence over vehicleData"""
        payload = {"userData": APPLICANT, "vehicles": [{"year": 1}, {"year": 2}], "vehicleData": {"year": 3}}
        assert normalize_payload(payload)["vehicles"] == [{"year": 1}, {"year": 2}]

    def test_non_object_rejected(self):
        """Test a non-object payload raises ValidationError"""
        with pytest.raises(ValidationError):
            normalize_payload(["not", "an", "object"])


class TestBuildRunInput:
    """Test model construction"""

    def test_models_are_built_and_frozen(self):
        """Test numbers are coerced and models are immutable"""
        request = normalize_payload({
            "applicant": APPLICANT,
            "vehicles": [{"year": 2020, "make": "Honda", "model": "Civic"}],
            "policy": {"currentlyInsured": True, "selectQuoteIndex": 1},
        })
        run_input = build_run_input(request)

        assert run_input.vehicles[0].year == "2020"
        assert run_input.vehicles[0].description == "2020 Honda Civic"
        assert run_input.drivers[0].first_name == "Jane"
        assert run_input.policy.select_quote_index == 1
        with pytest.raises(Exception):
            run_input.applicant.email = "other@example.com"

    def test_model_errors_become_validation_error(self):
        """Test pydantic failures are reported as ValidationError with locations"""
        request = normalize_payload({
            "applicant": APPLICANT,
            "vehicles": [{"year": 2020, "make": "Honda"}],
        })
        with pytest.raises(ValidationError) as exc_info:
            build_run_input(request)
        assert any(error.startswith("vehicles[0].model") for error in exc_info.value.errors)
