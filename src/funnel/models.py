"""Data models for quote funnel runs"""

from enum import Enum
from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class FunnelStage(str, Enum):
    """Funnel pages in the order the site presents them"""
    PERSONAL_INFO = "PersonalInfo"
    VEHICLE_LOOKUP = "VehicleLookup"
    VIN_ENTRY = "VinEntry"
    VEHICLE_DETAILS = "VehicleDetails"
    VEHICLE_USAGE = "VehicleUsage"
    VEHICLE_LIST = "VehicleList"
    DRIVER_INFO = "DriverInfo"
    DRIVER_LIST = "DriverList"
    POLICY_INFO = "PolicyInfo"
    COVERAGE_OPTIONS = "CoverageOptions"
    PROPERTY_INFO = "PropertyInfo"
    QUOTE_RESULTS = "QuoteResults"
    CONTACT_METHOD = "ContactMethod"
    ALSO_INTERESTED = "AlsoInterested"
    THANK_YOU = "ThankYou"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER: List[FunnelStage] = list(FunnelStage)


class InputModel(BaseModel):
    """Caller-supplied data: camelCase on the wire, read-only during a run"""
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class ApplicantProfile(InputModel):
    """Applicant identity, contact and residence (first funnel page)"""
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    address: str
    apartment: Optional[str] = None
    city: str
    state: str  # 2-letter code
    zip_code: str = Field(alias="zipCode")
    email: str
    phone: str
    lead_source: Optional[str] = Field(default=None, alias="leadSource")
    time_at_residence: Optional[str] = Field(default=None, alias="timeAtResidence")


class GaragingAddress(InputModel):
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    state: Optional[str] = None
    address: Optional[str] = None


class VehicleRecord(InputModel):
    """One vehicle; year/make/model are matched against site option lists"""
    vin: Optional[str] = None
    year: str
    make: str
    model: str
    usage: Optional[str] = None
    ownership: Optional[str] = None
    garaged: Optional[str] = None  # "0" means garaged at the applicant's address
    garaging_address: Optional[GaragingAddress] = Field(default=None, alias="garagingAddress")
    length_of_ownership: Optional[str] = Field(default=None, alias="lengthOfOwnership")

    @property
    def description(self) -> str:
        return f"{self.year} {self.make} {self.model}"


class DriverRecord(InputModel):
    """One driver; index 0 is always the applicant"""
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")  # YYYY-MM-DD
    gender: Optional[str] = None
    marital_status: Optional[str] = Field(default=None, alias="maritalStatus")
    license_origin: Optional[str] = Field(default=None, alias="licenseOrigin")
    license_state: Optional[str] = Field(default=None, alias="licenseState")
    license_status: Optional[str] = Field(default=None, alias="licenseStatus")
    license_number: Optional[str] = Field(default=None, alias="licenseNumber")
    sr22: Optional[bool] = None
    has_violations: Optional[bool] = Field(default=None, alias="hasViolations")
    relationship: Optional[str] = None


class PolicyPreferences(InputModel):
    """Prior insurance, coverage and post-quote preferences"""
    currently_insured: Optional[bool] = Field(default=None, alias="currentlyInsured")
    prior_carrier: Optional[str] = Field(default=None, alias="priorCarrier")
    prior_insurance_years: Optional[str] = Field(default=None, alias="priorInsuranceYears")
    prior_insurance_months: Optional[str] = Field(default=None, alias="priorInsuranceMonths")
    prior_insurance_expiry: Optional[str] = Field(default=None, alias="priorInsuranceExpiry")
    prior_monthly_payment: Optional[str] = Field(default=None, alias="priorMonthlyPayment")
    reason_no_insurance: Optional[str] = Field(default=None, alias="reasonNoInsurance")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    coverage_level: str = Field(default="Standard", alias="coverageLevel")
    property_quote: bool = Field(default=False, alias="propertyQuote")
    residence_status: Optional[str] = Field(default=None, alias="residenceStatus")
    residence_type: Optional[str] = Field(default=None, alias="residenceType")
    contact_method: str = Field(default="phone", alias="contactMethod")
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    select_quote_index: Optional[int] = Field(default=None, alias="selectQuoteIndex")


class QuoteRecord(BaseModel):
    """A single quote harvested from the results page"""
    model_config = ConfigDict(populate_by_name=True)

    price: str
    term: str = ""
    carrier: str = ""
    vehicle: str = ""
    coverages: List[Tuple[str, str]] = Field(default_factory=list)
    selection_index: int = Field(alias="selectionIndex")
    classification: Optional[str] = None  # set by the text-scan fallback only
    # Position of this quote's select button among all select buttons on the page
    button_index: Optional[int] = Field(default=None, exclude=True)


class StageResult(BaseModel):
    """Outcome of one stage handler"""
    success: bool
    message: str
    stage: FunnelStage
    location: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)
    screenshot: Optional[str] = None
    finished_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class RunResult(BaseModel):
    """Aggregated outcome of a whole funnel run"""
    success: bool
    message: str
    current_stage: str = ""
    stage: Optional[FunnelStage] = None
    error_kind: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    quotes: List[QuoteRecord] = Field(default_factory=list)
    stage_results: List[StageResult] = Field(default_factory=list)
    step: Optional[str] = None

    def to_output(self) -> Dict[str, Any]:
        """Caller-facing shape: success, message, currentStage, errors?, quotes?"""
        output: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "currentStage": self.current_stage,
        }
        if self.stage is not None:
            output["stage"] = self.stage.value
        if self.step:
            output["step"] = self.step
        if self.error_kind:
            output["errorKind"] = self.error_kind
        if self.errors:
            output["errors"] = list(self.errors)
        if self.quotes:
            output["quotes"] = [q.model_dump(by_alias=True, exclude_none=True) for q in self.quotes]
            output["quotesFound"] = len(self.quotes)
        return output
