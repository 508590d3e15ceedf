# lipid_levels/recommendations.py
# Rule tree → ordered, rationale-bearing recommendations.
#
# Each therapy class is decided independently and picks exactly one outcome
# from its own mutually exclusive branch set. Output order is fixed:
# statin, ezetimibe, PCSK9, other therapies, lifestyle.
#
# LDL-dependent escalation only fires on a known LDL above target. A missing
# (or validation-blocked) LDL never triggers intensify/add/consider.

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from lipid_levels.config import DEFAULT_CONFIG, EngineConfig
from lipid_levels.models import (
    GapAssessment,
    Intolerance,
    NormalizedPanel,
    OtherTherapy,
    PreventionCategory,
    Recommendation,
    RecommendationItem,
    RiskCategory,
    RiskContext,
    TargetLevels,
    TherapyAction,
    TherapyClass,
    TherapySeverity,
    TherapyState,
)
from lipid_levels.trace import Trace, add_trace

logger = logging.getLogger(__name__)


LIFESTYLE = (
    "Therapeutic lifestyle changes (Mediterranean or DASH diet)",
    "Regular physical activity (150+ minutes/week of moderate activity)",
    "Smoking cessation for all smokers",
    "Weight management targeting BMI <25 kg/m²",
)
LIFESTYLE_RATIONALE = "Recommended for every patient regardless of risk category or drug therapy"

PCSK9_ELIGIBLE_CATEGORIES = frozenset({RiskCategory.HIGH, RiskCategory.VERY_HIGH, RiskCategory.EXTREME})

# Changes that start a new drug or raise a dose.
_ESCALATING_PREFIXES = ("Initiate", "Intensify", "Add", "Consider")

# (change, rationale, summary)
_Outcome = Tuple[str, str, str]

_HIGH_INTENSITY_START: _Outcome = (
    "Initiate high-intensity statin therapy",
    "High-intensity statin therapy is recommended for high-risk patients to achieve ≥50% LDL-C reduction",
    "Start high-intensity statin (atorvastatin 40-80 mg or rosuvastatin 20-40 mg)",
)
_MODERATE_INTENSITY_START: _Outcome = (
    "Initiate moderate-intensity statin therapy",
    "Moderate-intensity statin therapy is recommended for intermediate-risk patients to achieve 30-50% LDL-C reduction",
    "Start moderate-intensity statin (atorvastatin 10-20 mg, rosuvastatin 5-10 mg, or equivalent)",
)

# Every category must appear; None = decided by LDL (low risk).
STATIN_INITIATION: Mapping[RiskCategory, Optional[_Outcome]] = MappingProxyType({
    RiskCategory.EXTREME: _HIGH_INTENSITY_START,
    RiskCategory.VERY_HIGH: _HIGH_INTENSITY_START,
    RiskCategory.HIGH: _HIGH_INTENSITY_START,
    RiskCategory.INTERMEDIATE: _MODERATE_INTENSITY_START,
    RiskCategory.LOW: None,
})


# ----------------------------
# Statin
# ----------------------------
def _low_risk_initiation(ldl: Optional[float], config: EngineConfig) -> _Outcome:
    threshold = config.recommendations.low_risk_statin_ldl
    if ldl is not None and ldl >= threshold:
        return (
            "Consider statin therapy despite low risk due to very high LDL-C",
            f"LDL-C ≥{threshold:.1f} mmol/L may indicate familial hypercholesterolemia and warrants "
            "consideration of statin therapy regardless of risk category",
            "Consider statin therapy due to very high LDL-C",
        )
    return (
        "Statin therapy not routinely recommended for low-risk patients",
        "For low-risk patients, lifestyle modification is the primary intervention",
        "Focus on lifestyle modifications",
    )


def statin_outcome(
    panel: NormalizedPanel,
    therapy: TherapyState,
    gaps: GapAssessment,
    targets: TargetLevels,
    config: EngineConfig = DEFAULT_CONFIG,
) -> _Outcome:
    above_target = gaps.at_ldl_target is False

    if not therapy.on_statin and not gaps.statin_intolerance:
        outcome = STATIN_INITIATION[targets.risk_category]
        return outcome if outcome is not None else _low_risk_initiation(panel.ldl, config)

    if therapy.on_statin and gaps.can_intensify_statin and above_target and not gaps.statin_intolerance:
        return (
            "Intensify current statin therapy",
            "Intensifying statin therapy can provide additional LDL-C reduction to help reach target",
            f"Increase {therapy.statin.value} dose to achieve greater LDL-C reduction",
        )

    if therapy.intolerance is Intolerance.COMPLETE:
        return (
            "Statin therapy not feasible due to documented intolerance",
            "Alternative lipid-lowering strategies are required for patients with complete statin intolerance",
            "Statin-independent therapy required due to documented statin intolerance",
        )

    if therapy.intolerance is Intolerance.PARTIAL:
        return (
            "Continue maximum tolerated statin dose",
            "Maintain the highest tolerated statin dose to achieve as much LDL-C reduction as possible",
            "Maintain current tolerated statin dose",
        )

    if gaps.at_ldl_target is True:
        return (
            "Continue current statin therapy",
            "Current therapy is effectively reaching the target LDL-C level",
            "Continue current statin therapy",
        )

    if gaps.at_ldl_target is None:
        return (
            "Continue current statin therapy",
            "LDL-C is unavailable or failed validation; escalation cannot be assessed until it is re-measured",
            "Continue current statin therapy and repeat LDL-C",
        )

    return (
        "Continue maximum statin therapy",
        "Maximum statin therapy should be maintained while considering add-on therapies",
        "Continue maximum statin therapy",
    )


# ----------------------------
# Ezetimibe
# ----------------------------
def ezetimibe_outcome(therapy: TherapyState, gaps: GapAssessment) -> Optional[_Outcome]:
    if not therapy.ezetimibe:
        if gaps.at_ldl_target is False and (therapy.on_statin or gaps.statin_intolerance):
            return (
                "Add ezetimibe therapy",
                "Ezetimibe can provide an additional 15-25% LDL-C reduction",
                "Add ezetimibe 10 mg daily",
            )
        return None

    if gaps.at_ldl_target is True:
        return (
            "Continue ezetimibe therapy",
            "Current combination therapy is effectively reaching the target LDL-C level",
            "",
        )
    return (
        "Continue ezetimibe therapy",
        "Ezetimibe should be continued while considering additional lipid-lowering options",
        "",
    )


# ----------------------------
# PCSK9 inhibitor
# ----------------------------
def pcsk9_secondary_threshold(category: RiskCategory, config: EngineConfig = DEFAULT_CONFIG) -> float:
    if category is RiskCategory.EXTREME:
        return config.recommendations.pcsk9_extreme_ldl
    return config.recommendations.pcsk9_secondary_ldl


def pcsk9_outcome(
    panel: NormalizedPanel,
    risk: RiskContext,
    therapy: TherapyState,
    gaps: GapAssessment,
    targets: TargetLevels,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[_Outcome]:
    if therapy.pcsk9:
        return (
            "Continue PCSK9 inhibitor therapy",
            "Continue current therapy and reassess lipid levels at next follow-up",
            "",
        )

    prerequisites = (
        gaps.at_ldl_target is False
        and therapy.ezetimibe
        and (therapy.on_statin or gaps.statin_intolerance)
        and targets.risk_category in PCSK9_ELIGIBLE_CATEGORIES
    )
    if not prerequisites or panel.ldl is None:
        return None

    ldl = panel.ldl
    if risk.prevention is PreventionCategory.SECONDARY:
        threshold = pcsk9_secondary_threshold(targets.risk_category, config)
        if ldl >= threshold:
            return (
                "Consider PCSK9 inhibitor therapy",
                "PCSK9 inhibitors can provide an additional 50-60% LDL-C reduction in patients with established "
                f"ASCVD not at target (LDL-C ≥{threshold:.1f} mmol/L) despite maximum tolerated statin plus ezetimibe",
                "Consider PCSK9 inhibitor for secondary prevention",
            )
        return None

    primary_threshold = config.recommendations.pcsk9_primary_ldl
    if ldl >= primary_threshold and risk.familial_hypercholesterolemia is not False:
        return (
            "Consider PCSK9 inhibitor therapy if familial hypercholesterolemia is confirmed",
            "PCSK9 inhibitors may be considered for primary prevention in patients with confirmed FH and "
            f"LDL-C ≥{primary_threshold:.1f} mmol/L despite maximum tolerated statin plus ezetimibe",
            "Consider PCSK9 inhibitor if FH is confirmed",
        )
    return None


# ----------------------------
# Other therapies
# ----------------------------
def other_therapies(gaps: GapAssessment, targets: TargetLevels) -> List[Tuple[OtherTherapy, str]]:
    """Returns (therapy, summary line or "") pairs in display order."""
    out: List[Tuple[OtherTherapy, str]] = []

    if gaps.severe_triglycerides:
        out.append((OtherTherapy(
            therapy="Consider fibrate therapy",
            rationale="Severe hypertriglyceridemia (>5.0 mmol/L) increases risk of pancreatitis and may benefit from fibrate therapy",
            severity=TherapySeverity.WARNING,
        ), "Fibrate therapy for severe hypertriglyceridemia"))
    elif gaps.hypertriglyceridemia and gaps.mixed_dyslipidemia:
        out.append((OtherTherapy(
            therapy="Consider fenofibrate as add-on therapy",
            rationale="Mixed dyslipidemia with elevated triglycerides and low HDL-C may benefit from add-on "
                      "fenofibrate therapy after statin optimization",
            severity=TherapySeverity.INFO,
        ), ""))

    if targets.has_elevated_lpa:
        out.append((OtherTherapy(
            therapy="More aggressive LDL-C targets recommended",
            rationale="Elevated Lp(a) is an independent risk factor that warrants more aggressive LDL-C reduction"
                      + (f" (LDL-C target ≤{targets.lpa_adjusted_ldl:g} mmol/L)" if targets.lpa_adjusted_ldl else ""),
            severity=TherapySeverity.WARNING,
        ), "More aggressive LDL-C targets due to elevated Lp(a)"))
        out.append((OtherTherapy(
            therapy="Consider family screening for Lp(a)",
            rationale="Elevated Lp(a) is largely genetically determined and first-degree relatives should be screened",
            severity=TherapySeverity.INFO,
        ), ""))

    return out


def projection_note(gaps: GapAssessment, targets: TargetLevels) -> str:
    if gaps.projected_ldl_after_escalation is None:
        return ""
    reach = "reaches" if gaps.target_reachable_with_escalation else "still above"
    return (
        f"Estimated LDL-C after this step: {gaps.projected_ldl_after_escalation:.1f} mmol/L "
        f"({reach} the ≤{targets.ldl:g} mmol/L target)"
    )


# ----------------------------
# Public API
# ----------------------------
def generate_recommendations(
    panel: NormalizedPanel,
    risk: RiskContext,
    therapy: TherapyState,
    gaps: GapAssessment,
    targets: TargetLevels,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> Recommendation:
    summary: List[str] = []
    items: List[RecommendationItem] = []

    def emit(cls: TherapyClass, outcome: Optional[_Outcome]) -> Optional[TherapyAction]:
        if outcome is None:
            return None
        change, rationale, line = outcome
        if cls is gaps.escalation_step and change.startswith(_ESCALATING_PREFIXES):
            note = projection_note(gaps, targets)
            if note:
                rationale = f"{rationale}. {note}"
        if line:
            summary.append(line)
        items.append(RecommendationItem(therapy_class=cls, text=change, rationale=rationale))
        add_trace(trace, f"Rec_{cls.value}", change, rationale)
        return TherapyAction(change=change, rationale=rationale)

    statin = emit(TherapyClass.STATIN, statin_outcome(panel, therapy, gaps, targets, config))
    ezetimibe = emit(TherapyClass.EZETIMIBE, ezetimibe_outcome(therapy, gaps))
    pcsk9 = emit(TherapyClass.PCSK9, pcsk9_outcome(panel, risk, therapy, gaps, targets, config))

    others: List[OtherTherapy] = []
    for other, line in other_therapies(gaps, targets):
        others.append(other)
        if line:
            summary.append(line)
        items.append(RecommendationItem(
            therapy_class=TherapyClass.OTHER,
            text=other.therapy,
            rationale=other.rationale,
            severity=other.severity,
        ))
        add_trace(trace, "Rec_other", other.therapy, other.severity.value)

    for text in LIFESTYLE:
        items.append(RecommendationItem(therapy_class=TherapyClass.LIFESTYLE, text=text, rationale=LIFESTYLE_RATIONALE))

    considered = pcsk9 is not None and pcsk9.change.startswith("Consider")
    logger.debug("Recommendations: statin=%r pcsk9Considered=%s", statin.change, considered)

    return Recommendation(
        summary=summary,
        statin=statin,
        ezetimibe=ezetimibe,
        pcsk9=pcsk9,
        pcsk9_considered=considered,
        other_therapies=others,
        lifestyle=list(LIFESTYLE),
        items=items,
    )
