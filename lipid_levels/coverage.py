# lipid_levels/coverage.py
# PCSK9 inhibitor coverage checklist (Special Authority style).
#
# Criteria are collected into met / not-met lists; the assessment never
# short-circuits so the full checklist is always shown. Eligibility needs:
# no unmet criteria, a qualifying combination (secondary with LDL ≥2.0, or
# primary with LDL ≥3.5 and confirmed FH), and the regimen-based maximum
# therapy flag from the gap assessment. A failed regimen check always leaves
# at least one not-met entry.

import logging
from typing import List, Optional

from lipid_levels.config import DEFAULT_CONFIG, EngineConfig
from lipid_levels.models import (
    CoverageAssessment,
    GapAssessment,
    NormalizedPanel,
    PreventionCategory,
    RiskContext,
    SecondaryEvent,
    TherapyDuration,
    TherapyState,
)
from lipid_levels.trace import Trace, add_trace

logger = logging.getLogger(__name__)


DOCUMENTATION_REQUIRED = (
    "Current and baseline lipid values",
    "Details of current and previous lipid-lowering therapies",
    "Documentation of statin intolerance if applicable",
    "For primary prevention: documentation of familial hypercholesterolemia diagnosis",
)

QUALIFYING_DURATIONS = frozenset({TherapyDuration.MONTHS_3_TO_6, TherapyDuration.OVER_6_MONTHS})

FH_DOCUMENTATION_REQUIRED = "Documentation of familial hypercholesterolemia (DLCN score ≥6) required"
MAXIMUM_THERAPY_REQUIRED = (
    "Must be on maximum tolerated therapy (maximum statin dose or complete intolerance, plus ezetimibe)"
)

_PRIORITY_EVENTS = {
    SecondaryEvent.MI: "Recent MI/ACS (higher priority for coverage)",
    SecondaryEvent.MULTI_VESSEL: "Multi-vessel disease (higher priority for coverage)",
}


def meets_maximum_therapy_duration(duration: TherapyDuration) -> bool:
    """Time-based criterion: at least 3 months on maximum tolerated therapy."""
    return duration in QUALIFYING_DURATIONS


def assess_coverage(
    panel: NormalizedPanel,
    risk: RiskContext,
    therapy: TherapyState,
    gaps: GapAssessment,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> CoverageAssessment:
    cfg = config.coverage
    met: List[str] = []
    not_met: List[str] = []
    notes: List[str] = []
    ldl = panel.ldl

    if therapy.pcsk9:
        notes.append("Patient is currently on PCSK9 inhibitor therapy")

    qualifying = False
    if risk.prevention is PreventionCategory.SECONDARY:
        met.append("Secondary prevention")
        if ldl is not None and ldl >= cfg.secondary_ldl:
            met.append(f"LDL-C ≥{cfg.secondary_ldl:.1f} mmol/L")
            qualifying = True
        else:
            not_met.append(f"LDL-C must be ≥{cfg.secondary_ldl:.1f} mmol/L for secondary prevention coverage")
        priority = _PRIORITY_EVENTS.get(risk.secondary_event)
        if priority:
            met.append(priority)
    elif ldl is not None and ldl >= cfg.primary_ldl:
        met.append("Primary prevention with very high LDL-C")
        fh = risk.familial_hypercholesterolemia
        if fh is True:
            met.append("Documented familial hypercholesterolemia")
            qualifying = True
        elif fh is False:
            not_met.append("Familial hypercholesterolemia not confirmed (required for primary prevention coverage)")
        else:
            notes.append("Documentation of familial hypercholesterolemia with DLCN score ≥6 would be required")
            not_met.append(FH_DOCUMENTATION_REQUIRED)
    else:
        not_met.append(
            "Does not meet primary coverage criteria (secondary prevention or primary prevention "
            f"with LDL-C ≥{cfg.primary_ldl:.1f} mmol/L and documented FH)"
        )

    if gaps.on_maximum_therapy:
        met.append("On maximum tolerated lipid-lowering therapy")
    else:
        unmet_before = len(not_met)
        if not gaps.max_statin_reached and not gaps.statin_intolerance:
            not_met.append("Must be on maximum tolerated statin therapy")
        if not therapy.ezetimibe:
            not_met.append("Must be on ezetimibe in addition to maximum tolerated statin")
        if len(not_met) == unmet_before:
            # e.g. partial intolerance on a sub-maximal dose with ezetimibe
            not_met.append(MAXIMUM_THERAPY_REQUIRED)

    if meets_maximum_therapy_duration(therapy.max_therapy_duration):
        met.append(f"≥{cfg.minimum_months_on_max_therapy} months on maximum tolerated therapy")
    else:
        not_met.append(
            f"Must be on maximum tolerated therapy for at least {cfg.minimum_months_on_max_therapy} months"
        )

    if gaps.statin_intolerance:
        if (therapy.intolerance_type or "").strip():
            met.append("Documented statin intolerance")
        else:
            not_met.append("Statin intolerance must be properly documented")

    eligible = not not_met and qualifying and gaps.on_maximum_therapy

    add_trace(trace, "Coverage_eligible", eligible, f"met={len(met)}; notMet={len(not_met)}")
    logger.debug("Coverage eligible=%s unmet=%s", eligible, not_met)

    return CoverageAssessment(
        eligible=eligible,
        criteria_met=met,
        criteria_not_met=not_met,
        notes=notes,
        documentation_required=list(DOCUMENTATION_REQUIRED),
    )
