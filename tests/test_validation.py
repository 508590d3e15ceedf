import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lipid_levels.config import EngineConfig, LpaConversion
from lipid_levels.models import IssueKind, Measurement, NormalizedPanel, PatientParameters, Severity
from lipid_levels.units import normalize
from lipid_levels.validation import PLAUSIBLE_RANGES, check_range, validate


def test_total_cholesterol_below_hdl_is_blocking():
    panel = NormalizedPanel(total_cholesterol=4.0, hdl=4.5)
    result = validate(panel)

    combos = [i for i in result.errors if i.kind is IssueKind.IMPLAUSIBLE_COMBINATION]
    assert [i.message for i in combos] == ["Total cholesterol cannot be less than HDL cholesterol"]
    assert combos[0].severity is Severity.ERROR
    assert set(combos[0].fields) == {"total_cholesterol", "hdl"}

    # HDL 4.5 is also outside its own absolute range
    assert any(i.kind is IssueKind.RANGE and i.field == "hdl" for i in result.errors)
    assert result.blocked_fields == ["hdl", "total_cholesterol"]
    assert not result.is_valid


def test_absolute_range_is_error_and_typical_range_is_warning():
    err = check_range("age", 16)
    assert err.severity is Severity.ERROR

    warn = check_range("ldl", 0.8)
    assert warn.severity is Severity.WARNING
    assert "unusual" in warn.message

    assert check_range("ldl", 3.0) is None
    assert check_range("ldl", None) is None
    assert check_range("not_a_field", 1.0) is None


def test_range_limits_are_inclusive():
    for name, bounds in PLAUSIBLE_RANGES.items():
        issue = check_range(name, bounds.absolute_min)
        assert issue is None or issue.severity is Severity.WARNING
        issue = check_range(name, bounds.absolute_max)
        assert issue is None or issue.severity is Severity.WARNING


def test_systolic_below_diastolic():
    result = validate(NormalizedPanel(sbp=80, dbp=95))
    msgs = [i.message for i in result.errors]
    assert "Systolic blood pressure cannot be less than diastolic blood pressure" in msgs
    assert result.blocked_fields == ["dbp", "sbp"]


def test_combination_warnings_do_not_block():
    # LDL + HDL + TG/2.2 = 4.5 vs TC 7.0
    result = validate(NormalizedPanel(total_cholesterol=7.0, ldl=2.5, hdl=1.5, triglycerides=1.1))
    assert result.is_valid
    assert any(i.field == "tc_lipid_sum" for i in result.warnings)
    assert result.blocked_fields == []


def test_derived_non_hdl_is_not_range_checked():
    params = PatientParameters(
        total_cholesterol=Measurement(value=3.0, unit="mmol/L"),
        hdl=Measurement(value=2.8, unit="mmol/L"),
    )
    result = validate(normalize(params))
    assert all(i.field != "non_hdl" for i in result.issues)
    assert any(i.field == "hdl_tc_ratio" for i in result.warnings)


def test_unverified_unit_is_flagged():
    panel = normalize(PatientParameters(ldl=Measurement(value=3.0, unit="mmol")))
    result = validate(panel)
    kinds = [(i.field, i.kind) for i in result.warnings]
    assert ("ldl", IssueKind.UNVERIFIED_UNIT) in kinds


def test_lpa_molar_conversion_surfaces_discrepancy_warning():
    panel = normalize(PatientParameters(lpa=Measurement(value=150, unit="nmol/L")))
    result = validate(panel)
    conv = [i for i in result.warnings if i.kind is IssueKind.CONVERSION_DISCREPANCY]
    assert len(conv) == 1
    assert result.is_valid


def test_non_reciprocal_lpa_factors_are_reported():
    config = EngineConfig(lpa=LpaConversion(version="test", mgdl_to_nmoll=2.4))
    result = validate(NormalizedPanel(lpa=40.0), config)
    conv = [i for i in result.warnings if i.kind is IssueKind.CONVERSION_DISCREPANCY]
    assert len(conv) == 1
    assert "inconsistent" in conv[0].message


def test_validation_does_not_modify_panel():
    panel = NormalizedPanel(total_cholesterol=4.0, hdl=4.5, ldl=12.0)
    before = panel.model_dump()
    validate(panel)
    assert panel.model_dump() == before


def test_blocked_fields_come_only_from_errors():
    rng = random.Random(11)
    for _ in range(400):
        panel = NormalizedPanel(
            total_cholesterol=rng.uniform(0.5, 16),
            ldl=rng.uniform(0.2, 11),
            hdl=rng.uniform(0.2, 5),
            triglycerides=rng.uniform(0.2, 16),
            sbp=rng.uniform(60, 250),
            dbp=rng.uniform(30, 150),
            age=rng.uniform(10, 105),
        )
        result = validate(panel)
        from_errors = {f for i in result.errors for f in i.fields}
        assert set(result.blocked_fields) == from_errors
        assert all(i.severity is Severity.WARNING for i in result.warnings)


def _combination_fields(panel):
    return {i.field for i in validate(panel).issues if i.kind is IssueKind.IMPLAUSIBLE_COMBINATION}


def test_total_cholesterol_below_ldl_is_blocking():
    result = validate(NormalizedPanel(total_cholesterol=3.0, ldl=3.5))
    assert [i.message for i in result.errors] == ["Total cholesterol cannot be less than LDL cholesterol"]
    assert result.blocked_fields == ["ldl", "total_cholesterol"]

    assert "tc_below_ldl" not in _combination_fields(NormalizedPanel(total_cholesterol=3.5, ldl=3.5))


def test_wide_pulse_pressure():
    result = validate(NormalizedPanel(sbp=200, dbp=85))
    assert [i.field for i in result.warnings if i.kind is IssueKind.IMPLAUSIBLE_COMBINATION] == ["wide_pulse_pressure"]
    assert result.is_valid

    # SBP not above 180
    assert "wide_pulse_pressure" not in _combination_fields(NormalizedPanel(sbp=180, dbp=70))
    # DBP not below 90
    assert "wide_pulse_pressure" not in _combination_fields(NormalizedPanel(sbp=195, dbp=90))
    # pulse pressure exactly 100
    assert "wide_pulse_pressure" not in _combination_fields(NormalizedPanel(sbp=185, dbp=85))


def test_severe_obesity_with_low_cholesterol():
    assert "obesity_low_cholesterol" in _combination_fields(NormalizedPanel(bmi=42, total_cholesterol=2.8))
    assert "obesity_low_cholesterol" not in _combination_fields(NormalizedPanel(bmi=40, total_cholesterol=2.8))
    assert "obesity_low_cholesterol" not in _combination_fields(NormalizedPanel(bmi=42, total_cholesterol=3.0))


def test_young_patient_with_fh_pattern():
    fired = validate(NormalizedPanel(age=35, total_cholesterol=8.5, triglycerides=0.9))
    issue = next(i for i in fired.warnings if i.field == "young_high_tc_low_tg")
    assert issue.severity is Severity.WARNING
    assert "familial hypercholesterolemia" in issue.message

    assert "young_high_tc_low_tg" not in _combination_fields(
        NormalizedPanel(age=40, total_cholesterol=8.5, triglycerides=0.9)
    )
    assert "young_high_tc_low_tg" not in _combination_fields(
        NormalizedPanel(age=35, total_cholesterol=8.0, triglycerides=0.9)
    )
    assert "young_high_tc_low_tg" not in _combination_fields(
        NormalizedPanel(age=35, total_cholesterol=8.5, triglycerides=1.0)
    )


def test_combination_rules_match_their_conditions():
    rng = random.Random(23)
    for _ in range(400):
        tc = rng.uniform(1.5, 12)
        ldl = rng.uniform(0.5, 9)
        sbp = rng.uniform(80, 230)
        dbp = rng.uniform(45, 130)
        bmi = rng.uniform(15, 60)
        age = rng.uniform(18, 90)
        tg = rng.uniform(0.5, 6)
        fired = _combination_fields(
            NormalizedPanel(total_cholesterol=tc, ldl=ldl, sbp=sbp, dbp=dbp, bmi=bmi, age=age, triglycerides=tg)
        )
        assert ("tc_below_ldl" in fired) == (tc < ldl)
        assert ("sbp_below_dbp" in fired) == (sbp < dbp)
        assert ("wide_pulse_pressure" in fired) == (sbp > 180 and dbp < 90 and sbp - dbp > 100)
        assert ("obesity_low_cholesterol" in fired) == (bmi > 40 and tc < 3.0)
        assert ("young_high_tc_low_tg" in fired) == (age < 40 and tc > 8.0 and tg < 1.0)
