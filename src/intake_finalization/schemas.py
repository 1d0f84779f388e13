"""Pydantic schemas for intake finalization service."""

from __future__ import annotations

import base64
import binascii
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from .scoring import SCREENER_LENGTH, UNANSWERED, RiskTier


def _decode_base64_text(value: object) -> object:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("expected base64-encoded content") from exc
    return value


def _encode_base64_text(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


# Raw bytes in Python, base64 text on the wire.
Base64Payload = Annotated[
    bytes,
    BeforeValidator(_decode_base64_text),
    PlainSerializer(_encode_base64_text, return_type=str, when_used="json"),
]


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Language(str, Enum):
    GERMAN = "de"
    ENGLISH = "en"
    RUSSIAN = "ru"
    ARABIC = "ar"


class Title(str, Enum):
    MR = "Mr"
    MRS = "Mrs"
    DIVERSE = "Diverse"
    CHILD = "Child"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    DIVERSE = "Diverse"


class InsuranceType(str, Enum):
    PUBLIC = "Public"
    PRIVATE = "Private"
    SELF_PAY = "SelfPay"
    OTHER = "Other"


class BloodThinner(str, Enum):
    ASPIRIN = "Aspirin"
    MARCUMAR = "Marcumar"
    XARELTO = "Xarelto"
    ELIQUIS = "Eliquis"
    PRADAXA = "Pradaxa"
    HEPARIN = "Heparin"
    CLOPIDOGREL = "Clopidogrel"
    OTHER = "Other"


class AllergyType(str, Enum):
    PENICILLIN = "Penicillin"
    LOCAL_ANESTHETICS = "LocalAnesthetics"
    LATEX = "Latex"
    IODINE = "Iodine"
    NSAIDS = "NSAIDs"
    METALS = "Metals"
    OTHER = "Other"


class MedicalCondition(str, Enum):
    """Checklist conditions, in rendering order; values name `MedicalConditions` fields."""

    CARDIOVASCULAR = "cardiovascular"
    PACEMAKER = "pacemaker"
    BLOOD_DISORDERS = "blood_disorders"
    DIABETES = "diabetes"
    RESPIRATORY = "respiratory"
    EPILEPSY = "epilepsy"
    INFECTIOUS_DISEASES = "infectious_diseases"
    LIVER_DISEASE = "liver_disease"
    KIDNEY_DISEASE = "kidney_disease"
    THYROID_DISORDERS = "thyroid_disorders"
    OSTEOPOROSIS = "osteoporosis"
    AUTOIMMUNE = "autoimmune"
    HEAD_NECK_RADIATION = "head_neck_radiation"
    CHEMOTHERAPY = "chemotherapy"
    OTHER = "other"


class Trimester(str, Enum):
    FIRST = "First"
    SECOND = "Second"
    THIRD = "Third"


class SmokingAmount(str, Enum):
    ONE_TO_FIVE = "1-5"
    FIVE_TO_TEN = "5-10"
    TEN_TO_TWENTY = "10-20"
    TWENTY_PLUS = "20+"


class AlcoholConsumption(str, Enum):
    NEVER = "Never"
    OCCASIONALLY = "Occasionally"
    REGULARLY = "Regularly"
    DAILY = "Daily"


class VisitReason(str, Enum):
    CHECKUP = "Checkup"
    PAIN = "Pain"
    AESTHETIC = "Aesthetic"
    IMPLANT = "Implant"
    BRACES_STRAIGHTENING = "BracesStraightening"
    CONTINUATION = "Continuation"
    OTHER = "Other"


class AestheticSubType(str, Enum):
    VENEERS = "Veneers"
    VENEER_REVISION = "VeneerRevision"
    COMPOSITE_BONDING = "CompositeBonding"
    PRINTED_VENEERS = "PrintedVeneers"
    SMILE_MAKEOVER = "SmileMakeover"


class LastDentalVisit(str, Enum):
    LESS_THAN_6_MONTHS = "LessThan6Months"
    SIX_TO_12_MONTHS = "6To12Months"
    ONE_TO_2_YEARS = "1To2Years"
    MORE_THAN_2_YEARS = "MoreThan2Years"
    NEVER = "Never"


class TmjSymptom(str, Enum):
    CLICKING = "Clicking"
    PAIN = "Pain"
    LIMITED_OPENING = "LimitedOpening"
    LOCKING = "Locking"


class AnxietyLevel(str, Enum):
    NONE = "None"
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"


class ConsentItem(str, Enum):
    """Consent statements, in rendering order; values name `ConsentInfo` fields."""

    GDPR = "gdpr"
    DRIVING = "driving"
    MISSED_APPOINTMENT = "missed_appointment"
    PHOTOS_INTERNAL = "photos_internal"
    PHOTOS_RESEARCH = "photos_research"
    PHOTOS_MARKETING = "photos_marketing"


class PersonalInfo(_Snapshot):
    title: Title = Title.MR
    first_name: str = ""
    last_name: str = ""
    date_of_birth: date | None = None
    gender: Gender = Gender.MALE
    street: str = ""
    postal_code: str = ""
    city: str = ""
    country: str = "Austria"
    phone: str = ""
    email: str = ""
    insurance_type: InsuranceType = InsuranceType.PUBLIC
    insurance_name: str = ""
    insurance_number: str = ""
    profession: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name.strip(), self.last_name.strip()) if part)


class MedicationInfo(_Snapshot):
    under_treatment: bool = False
    doctor_name: str = ""
    treatment_reason: str = ""
    taking_medications: bool = False
    medications_list: str = ""
    taking_blood_thinners: bool = False
    blood_thinner: BloodThinner = BloodThinner.ASPIRIN


class AllergyInfo(_Snapshot):
    has_allergies: bool = False
    allergy_types: tuple[AllergyType, ...] = ()
    other_allergy_text: str = ""


class ConditionEntry(_Snapshot):
    present: bool = False
    details: str = ""
    sub_options: tuple[str, ...] = ()


class MedicalConditions(_Snapshot):
    cardiovascular: ConditionEntry = ConditionEntry()
    pacemaker: ConditionEntry = ConditionEntry()
    blood_disorders: ConditionEntry = ConditionEntry()
    diabetes: ConditionEntry = ConditionEntry()
    respiratory: ConditionEntry = ConditionEntry()
    epilepsy: ConditionEntry = ConditionEntry()
    infectious_diseases: ConditionEntry = ConditionEntry()
    liver_disease: ConditionEntry = ConditionEntry()
    kidney_disease: ConditionEntry = ConditionEntry()
    thyroid_disorders: ConditionEntry = ConditionEntry()
    osteoporosis: ConditionEntry = ConditionEntry()
    autoimmune: ConditionEntry = ConditionEntry()
    head_neck_radiation: ConditionEntry = ConditionEntry()
    chemotherapy: ConditionEntry = ConditionEntry()
    other: ConditionEntry = ConditionEntry()

    def entry(self, condition: MedicalCondition) -> ConditionEntry:
        return getattr(self, condition.value)

    def present(self) -> list[tuple[MedicalCondition, ConditionEntry]]:
        """Present conditions in checklist order."""

        return [(condition, self.entry(condition)) for condition in MedicalCondition if self.entry(condition).present]


class WomensHealthInfo(_Snapshot):
    pregnant: bool = False
    trimester: Trimester | None = None
    breastfeeding: bool = False
    taking_contraceptives: bool = False
    contraceptive_type: str = ""


class LifestyleInfo(_Snapshot):
    smoker: bool = False
    smoking_amount: SmokingAmount | None = None
    alcohol: AlcoholConsumption = AlcoholConsumption.NEVER
    bruxism: bool = False
    nightguard: bool = False


class DentalHistoryInfo(_Snapshot):
    visit_reason: VisitReason | None = None
    aesthetic_sub_type: AestheticSubType | None = None
    screener: tuple[int, ...] = Field(
        default=(UNANSWERED,) * SCREENER_LENGTH,
        min_length=SCREENER_LENGTH,
        max_length=SCREENER_LENGTH,
    )
    last_dental_visit: LastDentalVisit | None = None
    bleeding_gums: bool = False
    has_tmj: bool = False
    tmj_symptoms: tuple[TmjSymptom, ...] = ()
    had_dental_surgery: bool = False
    had_anesthesia_complications: bool = False
    anesthesia_complication_details: str = ""
    anxiety_level: AnxietyLevel = AnxietyLevel.NONE

    @property
    def is_aesthetic(self) -> bool:
        return self.visit_reason is VisitReason.AESTHETIC


class ConsentInfo(_Snapshot):
    gdpr: bool = False
    driving: bool = False
    missed_appointment: bool = False
    photos_internal: bool = False
    photos_research: bool = False
    photos_marketing: bool = False

    def granted(self, item: ConsentItem) -> bool:
        return bool(getattr(self, item.value))


class PatientRecord(_Snapshot):
    """Immutable snapshot of a completed intake, taken at submission."""

    patient_number: str = ""
    language: Language = Language.GERMAN
    personal: PersonalInfo = PersonalInfo()
    medication: MedicationInfo = MedicationInfo()
    allergies: AllergyInfo = AllergyInfo()
    conditions: MedicalConditions = MedicalConditions()
    womens_health: WomensHealthInfo = WomensHealthInfo()
    lifestyle: LifestyleInfo = LifestyleInfo()
    dental: DentalHistoryInfo = DentalHistoryInfo()
    consents: ConsentInfo = ConsentInfo()
    signature_png: Base64Payload | None = None
    submitted_at: datetime


class MailCredentials(_Snapshot):
    enabled: bool = False
    host: str = ""
    port: int = Field(default=465, ge=1, le=65535)
    username: str = ""
    password: str = Field(default="", repr=False)


class ClinicSettings(_Snapshot):
    """Clinic display metadata and delivery configuration supplied per submission."""

    clinic_name: str = "oh! dental clinic"
    clinic_subtitle: str = "Zahnklinik"
    street: str = ""
    postal_code: str = ""
    city: str = "Vienna"
    country: str = "Austria"
    website: str = ""
    email: str = ""
    logo_png: Base64Payload | None = None
    missed_appointment_fee: int = Field(default=150, ge=0)
    mail: MailCredentials = MailCredentials()

    @property
    def full_address(self) -> str:
        city_line = " ".join(part for part in (self.postal_code, self.city) if part)
        return ", ".join(part for part in (self.street, city_line, self.country) if part)


class ArchiveEntry(BaseModel):
    """Manifest row for one archived document."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    patient_name: str
    created_at: datetime
    risk_tier: RiskTier | None = None
    score: int | None = None


class SubmissionRequest(BaseModel):
    """Completed record plus clinic settings, as handed over by the kiosk."""

    record: PatientRecord
    clinic: ClinicSettings = ClinicSettings()


class ArchiveListResponse(BaseModel):
    items: list[ArchiveEntry]


class DeleteArchiveEntryResponse(BaseModel):
    entry_id: str
    deleted: bool = True


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: Literal["ok"] = "ok"
    service: str
    version: str
    timestamp: datetime
