# lipid_levels/models.py
# Records passed between pipeline stages.
#
# Inputs (PatientParameters, RiskContext, TherapyState) arrive from the host
# form layer; outputs (TargetLevels, GapAssessment, Recommendation,
# CoverageAssessment) go to whatever renders or exports them. All records are
# frozen and built fresh per evaluation.

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------
# Closed enumerations
# ----------------------------
class PreventionCategory(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SecondaryEvent(str, Enum):
    NONE = "none"
    MI = "mi"
    MULTI_VESSEL = "multi_vessel"


class RiskCategory(str, Enum):
    """Risk tier, totally ordered by severity (Low < ... < Extreme)."""

    LOW = "low"
    INTERMEDIATE = "intermediate"
    HIGH = "high"
    VERY_HIGH = "very_high"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return list(RiskCategory).index(self)

    @property
    def label(self) -> str:
        return {
            RiskCategory.LOW: "Low Risk",
            RiskCategory.INTERMEDIATE: "Intermediate Risk",
            RiskCategory.HIGH: "High Risk",
            RiskCategory.VERY_HIGH: "Very High Risk",
            RiskCategory.EXTREME: "Extreme Risk",
        }[self]

    def __lt__(self, other):
        if not isinstance(other, RiskCategory):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, RiskCategory):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, RiskCategory):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, RiskCategory):
            return NotImplemented
        return self.rank >= other.rank


class StatinMolecule(str, Enum):
    NONE = "none"
    ATORVASTATIN = "atorvastatin"
    ROSUVASTATIN = "rosuvastatin"
    SIMVASTATIN = "simvastatin"
    PRAVASTATIN = "pravastatin"
    LOVASTATIN = "lovastatin"
    FLUVASTATIN = "fluvastatin"
    PITAVASTATIN = "pitavastatin"


class StatinIntensity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class Intolerance(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    COMPLETE = "complete"


class TherapyDuration(str, Enum):
    """Time on maximum tolerated therapy."""

    NONE = "none"
    UNDER_3_MONTHS = "<3"
    MONTHS_3_TO_6 = "3-6"
    OVER_6_MONTHS = ">6"


class Severity(str, Enum):
    ERROR = "PhysiologicalRangeError"
    WARNING = "PhysiologicalRangeWarning"


class IssueKind(str, Enum):
    RANGE = "range"
    IMPLAUSIBLE_COMBINATION = "ImplausibleCombination"
    UNVERIFIED_UNIT = "unverified_unit"
    CONVERSION_DISCREPANCY = "conversion_discrepancy"


class TherapyClass(str, Enum):
    STATIN = "statin"
    EZETIMIBE = "ezetimibe"
    PCSK9 = "pcsk9"
    OTHER = "other"
    LIFESTYLE = "lifestyle"


class TherapySeverity(str, Enum):
    WARNING = "warning"
    INFO = "info"


# ----------------------------
# Inputs
# ----------------------------
class Measurement(_Record):
    value: float
    unit: str = ""


class RiskContext(_Record):
    prevention: PreventionCategory = PreventionCategory.PRIMARY
    secondary_event: SecondaryEvent = SecondaryEvent.NONE
    # Externally computed FRS/QRISK3 10-year risk, percent.
    risk_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    # True = FH confirmed, False = excluded, None = not assessed.
    familial_hypercholesterolemia: Optional[bool] = None


class TherapyState(_Record):
    statin: StatinMolecule = StatinMolecule.NONE
    intensity: Optional[StatinIntensity] = None
    dose_mg: Optional[float] = Field(default=None, ge=0.0)
    ezetimibe: bool = False
    pcsk9: bool = False
    intolerance: Intolerance = Intolerance.NONE
    intolerance_type: Optional[str] = None
    max_therapy_duration: TherapyDuration = TherapyDuration.NONE

    @property
    def on_statin(self) -> bool:
        return self.statin is not StatinMolecule.NONE


class PatientParameters(_Record):
    total_cholesterol: Optional[Measurement] = None
    ldl: Optional[Measurement] = None
    hdl: Optional[Measurement] = None
    non_hdl: Optional[Measurement] = None
    triglycerides: Optional[Measurement] = None
    apob: Optional[Measurement] = None
    lpa: Optional[Measurement] = None
    height: Optional[Measurement] = None
    weight: Optional[Measurement] = None
    sbp: Optional[float] = None
    dbp: Optional[float] = None
    age: Optional[float] = None
    risk: RiskContext = Field(default_factory=RiskContext)
    therapy: TherapyState = Field(default_factory=TherapyState)


# ----------------------------
# Normalized panel
# ----------------------------
# Derived field -> fields it is computed from.
DERIVED_FROM = {
    "non_hdl": ("total_cholesterol", "hdl"),
    "bmi": ("height_cm", "weight_kg"),
}


class NormalizedPanel(_Record):
    """Canonical units: lipids mmol/L, apoB g/L, Lp(a) mg/dL, cm, kg."""

    total_cholesterol: Optional[float] = None
    ldl: Optional[float] = None
    hdl: Optional[float] = None
    non_hdl: Optional[float] = None
    triglycerides: Optional[float] = None
    apob: Optional[float] = None
    lpa: Optional[float] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    bmi: Optional[float] = None
    sbp: Optional[float] = None
    dbp: Optional[float] = None
    age: Optional[float] = None
    derived_fields: List[str] = Field(default_factory=list)
    unverified_fields: List[str] = Field(default_factory=list)
    conversion_notes: List[str] = Field(default_factory=list)

    def get(self, name: str) -> Optional[float]:
        return getattr(self, name)

    def has(self, name: str) -> bool:
        return getattr(self, name) is not None

    def without(self, fields: Iterable[str]) -> "NormalizedPanel":
        """Copy with the given fields (and anything derived from them) cleared."""
        drop = set(fields)
        for derived, sources in DERIVED_FROM.items():
            if derived in self.derived_fields and drop.intersection(sources):
                drop.add(derived)
        if not drop:
            return self
        return self.model_copy(update={name: None for name in drop})


# ----------------------------
# Validation
# ----------------------------
class ValidationIssue(_Record):
    field: str
    severity: Severity
    kind: IssueKind
    message: str
    note: Optional[str] = None
    fields: List[str] = Field(default_factory=list)


class ValidationResult(_Record):
    issues: List[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def blocked_fields(self) -> List[str]:
        blocked = set()
        for issue in self.errors:
            blocked.update(issue.fields or [issue.field])
        return sorted(blocked)

    def raise_for_errors(self) -> None:
        if self.errors:
            from lipid_levels.errors import PhysiologicalRangeError
            raise PhysiologicalRangeError(self.errors)


# ----------------------------
# Targets + gaps
# ----------------------------
class TargetLevels(_Record):
    risk_category: RiskCategory
    ldl: float
    non_hdl: float
    apob: float
    percent_reduction: int
    lpa_adjusted_ldl: Optional[float] = None
    has_elevated_lpa: bool = False

    @model_validator(mode="after")
    def _ldl_not_above_non_hdl(self):
        if self.ldl > self.non_hdl:
            raise ValueError(f"LDL target {self.ldl} exceeds non-HDL target {self.non_hdl}")
        return self


class GapAssessment(_Record):
    current_therapy_intensity: str = "None"
    at_ldl_target: Optional[bool] = None
    at_non_hdl_target: Optional[bool] = None
    at_apob_target: Optional[bool] = None
    ldl_gap: Optional[float] = None
    non_hdl_gap: Optional[float] = None
    apob_gap: Optional[float] = None
    can_intensify_statin: bool = False
    max_statin_reached: bool = False
    statin_intolerance: bool = False
    on_ezetimibe: bool = False
    on_pcsk9: bool = False
    on_maximum_therapy: bool = False
    hypertriglyceridemia: bool = False
    severe_triglycerides: bool = False
    triglyceride_status: Optional[str] = None
    mixed_dyslipidemia: bool = False
    estimated_additional_ldl_reduction_percent: float = 0.0
    estimated_current_ldl_reduction_percent: float = 0.0
    escalation_step: Optional[TherapyClass] = None
    projected_ldl_after_escalation: Optional[float] = None
    target_reachable_with_escalation: Optional[bool] = None


# ----------------------------
# Recommendations + coverage
# ----------------------------
class TherapyAction(_Record):
    change: str
    rationale: str


class OtherTherapy(_Record):
    therapy: str
    rationale: str
    severity: TherapySeverity


class RecommendationItem(_Record):
    therapy_class: TherapyClass
    text: str
    rationale: str
    severity: Optional[TherapySeverity] = None


class Recommendation(_Record):
    summary: List[str] = Field(default_factory=list)
    statin: TherapyAction
    ezetimibe: Optional[TherapyAction] = None
    pcsk9: Optional[TherapyAction] = None
    pcsk9_considered: bool = False
    other_therapies: List[OtherTherapy] = Field(default_factory=list)
    lifestyle: List[str] = Field(default_factory=list)
    items: List[RecommendationItem] = Field(default_factory=list)


class CoverageAssessment(_Record):
    eligible: bool
    criteria_met: List[str] = Field(default_factory=list)
    criteria_not_met: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    documentation_required: List[str] = Field(default_factory=list)


class Evaluation(_Record):
    version: Dict[str, str]
    panel: NormalizedPanel
    validation: ValidationResult
    targets: TargetLevels
    gaps: GapAssessment
    recommendation: Recommendation
    coverage: CoverageAssessment
    trace: List[Dict[str, Any]] = Field(default_factory=list)
