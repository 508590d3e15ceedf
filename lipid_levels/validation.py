# lipid_levels/validation.py
# Physiological plausibility validation on a NormalizedPanel.
#
# Two severities only:
# - PhysiologicalRangeError: absolute implausibility; the field (or every field
#   of an implausible combination) is blocked from downstream rules
# - PhysiologicalRangeWarning: unusual but possible; surfaced for review
#
# Per-field ranges and cross-field combination rules are immutable tables.
# Combination rules run on every present value, including values that already
# failed their own range check. Validation classifies only; it never edits the
# panel.

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Tuple

from lipid_levels.config import DEFAULT_CONFIG, EngineConfig
from lipid_levels.models import (
    IssueKind,
    NormalizedPanel,
    Severity,
    ValidationIssue,
    ValidationResult,
)
from lipid_levels.trace import Trace, add_trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeSpec:
    absolute_min: float
    absolute_max: float
    typical_min: float
    typical_max: float
    unit: str
    description: str
    note: str


PLAUSIBLE_RANGES: Mapping[str, RangeSpec] = MappingProxyType({
    "age": RangeSpec(
        18, 100, 25, 85, "years", "Age",
        "Values outside 25-85 may be outside validated ranges for risk calculators",
    ),
    "sbp": RangeSpec(
        70, 240, 90, 210, "mmHg", "Systolic Blood Pressure",
        "Values below 90 mmHg may indicate hypotension; values above 180 mmHg indicate severe hypertension",
    ),
    "dbp": RangeSpec(
        40, 140, 60, 120, "mmHg", "Diastolic Blood Pressure",
        "Values below 60 mmHg may indicate hypotension; values above 120 mmHg indicate severe hypertension",
    ),
    "total_cholesterol": RangeSpec(
        1.0, 15.0, 2.5, 12.0, "mmol/L", "Total Cholesterol",
        "Values below 2.5 mmol/L are extremely rare; values above 8.0 mmol/L may indicate familial hypercholesterolemia",
    ),
    "hdl": RangeSpec(
        0.5, 4.0, 0.7, 3.0, "mmol/L", "HDL Cholesterol",
        "Values below 0.7 mmol/L indicate very low HDL; values above 2.5 mmol/L are rare",
    ),
    "ldl": RangeSpec(
        0.5, 10.0, 1.0, 8.0, "mmol/L", "LDL Cholesterol",
        "Values below 1.0 mmol/L are rare; values above 5.0 mmol/L may indicate familial hypercholesterolemia",
    ),
    "triglycerides": RangeSpec(
        0.5, 15.0, 0.8, 10.0, "mmol/L", "Triglycerides",
        "Values above 5.0 mmol/L increase risk of pancreatitis",
    ),
    "non_hdl": RangeSpec(
        0.5, 14.0, 1.5, 10.0, "mmol/L", "Non-HDL Cholesterol",
        "Values above 6.0 mmol/L may indicate familial hypercholesterolemia",
    ),
    "apob": RangeSpec(
        0.2, 2.5, 0.4, 2.0, "g/L", "Apolipoprotein B",
        "Values above 1.2 g/L are associated with increased cardiovascular risk",
    ),
    "lpa": RangeSpec(
        0, 500, 0, 300, "mg/dL", "Lipoprotein(a)",
        "Values above 30-50 mg/dL are associated with increased cardiovascular risk",
    ),
    "bmi": RangeSpec(
        10, 100, 15, 60, "kg/m²", "Body Mass Index",
        "BMI below 18.5 is underweight; above 30 is obese; values outside 15-60 are extremely rare",
    ),
    "height_cm": RangeSpec(
        100, 250, 140, 220, "cm", "Height",
        "Adult height outside this range is extremely rare",
    ),
    "weight_kg": RangeSpec(
        30, 250, 40, 200, "kg", "Weight",
        "Adult weight outside this range is extremely rare",
    ),
})


@dataclass(frozen=True)
class CombinationRule:
    name: str
    fields: Tuple[str, ...]
    severity: Severity
    message: str
    note: str
    check: Callable[..., bool]


def _tc_vs_lipids(tc, ldl, hdl, tg):
    return abs((ldl + hdl + tg / 2.2) - tc) > 1.0


IMPLAUSIBLE_COMBINATIONS: Tuple[CombinationRule, ...] = (
    CombinationRule(
        "tc_below_hdl", ("total_cholesterol", "hdl"), Severity.ERROR,
        "Total cholesterol cannot be less than HDL cholesterol",
        "HDL is a fraction of total cholesterol; check units and transcription",
        lambda tc, hdl: tc < hdl,
    ),
    CombinationRule(
        "tc_below_ldl", ("total_cholesterol", "ldl"), Severity.ERROR,
        "Total cholesterol cannot be less than LDL cholesterol",
        "LDL is a fraction of total cholesterol; check units and transcription",
        lambda tc, ldl: tc < ldl,
    ),
    CombinationRule(
        "tc_lipid_sum", ("total_cholesterol", "ldl", "hdl", "triglycerides"), Severity.WARNING,
        "Lipid values do not follow the expected relationship: TC ≈ LDL + HDL + (TG/2.2)",
        "Difference exceeds 1.0 mmol/L; results may come from different samples",
        _tc_vs_lipids,
    ),
    CombinationRule(
        "hdl_tc_ratio", ("hdl", "total_cholesterol"), Severity.WARNING,
        "HDL cholesterol is unusually high relative to total cholesterol",
        "HDL/TC ratio above 0.8",
        lambda hdl, tc: tc > 0 and hdl / tc > 0.8,
    ),
    CombinationRule(
        "sbp_below_dbp", ("sbp", "dbp"), Severity.ERROR,
        "Systolic blood pressure cannot be less than diastolic blood pressure",
        "Readings may be transposed",
        lambda sbp, dbp: sbp < dbp,
    ),
    CombinationRule(
        "wide_pulse_pressure", ("sbp", "dbp"), Severity.WARNING,
        "Extremely wide pulse pressure (difference between systolic and diastolic) is unusual",
        "SBP > 180 mmHg with DBP < 90 mmHg and pulse pressure > 100 mmHg",
        lambda sbp, dbp: sbp > 180 and dbp < 90 and (sbp - dbp) > 100,
    ),
    CombinationRule(
        "obesity_low_cholesterol", ("bmi", "total_cholesterol"), Severity.WARNING,
        "Severely obese patients rarely have very low cholesterol levels",
        "BMI > 40 kg/m² with total cholesterol < 3.0 mmol/L",
        lambda bmi, tc: bmi > 40 and tc < 3.0,
    ),
    CombinationRule(
        "young_high_tc_low_tg", ("age", "total_cholesterol", "triglycerides"), Severity.WARNING,
        "Young patient with very high cholesterol but normal triglycerides suggests familial hypercholesterolemia",
        "Age < 40 with TC > 8.0 mmol/L and TG < 1.0 mmol/L; consider FH assessment (e.g. DLCN score)",
        lambda age, tc, tg: age < 40 and tc > 8.0 and tg < 1.0,
    ),
)


# ----------------------------
# Single-field checks
# ----------------------------
def check_range(name: str, value: Optional[float]) -> Optional[ValidationIssue]:
    bounds = PLAUSIBLE_RANGES.get(name)
    if bounds is None or value is None:
        return None

    shown = f"{value:g}" if float(value).is_integer() else f"{value:.2f}"
    if value < bounds.absolute_min or value > bounds.absolute_max:
        return ValidationIssue(
            field=name,
            severity=Severity.ERROR,
            kind=IssueKind.RANGE,
            message=(
                f"{bounds.description} value of {shown} {bounds.unit} is outside the physiologically "
                f"possible range ({bounds.absolute_min:g}-{bounds.absolute_max:g} {bounds.unit})"
            ),
            note=bounds.note,
            fields=[name],
        )
    if value < bounds.typical_min or value > bounds.typical_max:
        return ValidationIssue(
            field=name,
            severity=Severity.WARNING,
            kind=IssueKind.RANGE,
            message=f"{bounds.description} value of {shown} {bounds.unit} is unusual. Please verify this value.",
            note=bounds.note,
            fields=[name],
        )
    return None


def check_combinations(panel: NormalizedPanel) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for rule in IMPLAUSIBLE_COMBINATIONS:
        args = [panel.get(f) for f in rule.fields]
        if any(a is None for a in args):
            continue
        if rule.check(*args):
            issues.append(ValidationIssue(
                field=rule.name,
                severity=rule.severity,
                kind=IssueKind.IMPLAUSIBLE_COMBINATION,
                message=rule.message,
                note=rule.note,
                fields=list(rule.fields),
            ))
    return issues


def _unit_issues(panel: NormalizedPanel, config: EngineConfig) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for name in panel.unverified_fields:
        issues.append(ValidationIssue(
            field=name,
            severity=Severity.WARNING,
            kind=IssueKind.UNVERIFIED_UNIT,
            message=f"Unit for {name} was not recognized; value used without conversion (unverified)",
            note="Confirm the unit before acting on rules that use this value",
            fields=[name],
        ))

    for note in panel.conversion_notes:
        issues.append(ValidationIssue(
            field="lpa",
            severity=Severity.WARNING,
            kind=IssueKind.CONVERSION_DISCREPANCY,
            message="Lp(a) was reported in nmol/L and converted to mg/dL with an estimated factor",
            note=note,
            fields=["lpa"],
        ))

    if panel.lpa is not None and not config.lpa.is_reciprocal():
        issues.append(ValidationIssue(
            field="lpa",
            severity=Severity.WARNING,
            kind=IssueKind.CONVERSION_DISCREPANCY,
            message=(
                f"Configured Lp(a) factors are inconsistent: mg/dL→nmol/L ×{config.lpa.mgdl_to_nmoll:g} "
                f"vs nmol/L→mg/dL ×{config.lpa.nmoll_to_mgdl:g} ({config.lpa.version})"
            ),
            note="Thresholds expressed in different units will not agree",
            fields=["lpa"],
        ))
    return issues


# ----------------------------
# Public API
# ----------------------------
def validate(
    panel: NormalizedPanel,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> ValidationResult:
    issues: List[ValidationIssue] = []

    for name in PLAUSIBLE_RANGES:
        if name in panel.derived_fields and name != "bmi":
            # computed from fields that are checked on their own
            continue
        issue = check_range(name, panel.get(name))
        if issue is not None:
            issues.append(issue)

    issues.extend(check_combinations(panel))
    issues.extend(_unit_issues(panel, config))

    result = ValidationResult(issues=issues)
    for issue in result.issues:
        add_trace(trace, f"Validation_{issue.kind.value}", issue.field, f"{issue.severity.value}: {issue.message}")
    if result.blocked_fields:
        logger.warning("Blocking fields after validation: %s", ", ".join(result.blocked_fields))
    logger.debug("Validation produced %d errors, %d warnings", len(result.errors), len(result.warnings))
    return result
