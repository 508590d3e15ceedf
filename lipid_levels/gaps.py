# lipid_levels/gaps.py
# Current therapy vs targets.
#
# Two "maximum therapy" notions exist and are kept apart on purpose:
# - is_on_maximum_therapy(): regimen-based (max statin or complete
#   intolerance, plus ezetimibe); used here and for coverage
# - coverage.meets_maximum_therapy_duration(): time-based, from the
#   duration band; only the coverage checklist reads it

import logging
from typing import Mapping, Optional

from lipid_levels.config import DEFAULT_CONFIG, EngineConfig, LdlReductionFactors
from lipid_levels.models import (
    GapAssessment,
    Intolerance,
    NormalizedPanel,
    RiskCategory,
    StatinIntensity,
    StatinMolecule,
    TargetLevels,
    TherapyClass,
    TherapyState,
)
from lipid_levels.trace import Trace, add_trace, fmt_2dp

logger = logging.getLogger(__name__)


def max_statin_dose(molecule: StatinMolecule, table: Mapping[StatinMolecule, float]) -> Optional[float]:
    return table.get(molecule)


def is_max_statin_reached(therapy: TherapyState, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    ceiling = max_statin_dose(therapy.statin, config.max_statin_dose_mg)
    if ceiling is None or therapy.dose_mg is None:
        return False
    return therapy.dose_mg >= ceiling


def can_intensify_statin(therapy: TherapyState, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    if not therapy.on_statin:
        return False
    if therapy.intensity not in (StatinIntensity.LOW, StatinIntensity.MODERATE):
        return False
    # unknown dose counts as below the ceiling
    return not is_max_statin_reached(therapy, config)


def is_on_maximum_therapy(therapy: TherapyState, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Max statin (or complete intolerance) AND ezetimibe.

    Ezetimibe is required even when statins are not tolerated at all.
    """
    statin_ceiling = is_max_statin_reached(therapy, config) or therapy.intolerance is Intolerance.COMPLETE
    return statin_ceiling and therapy.ezetimibe


def therapy_intensity_label(therapy: TherapyState) -> str:
    if not therapy.on_statin:
        return "None"
    if therapy.intensity is None:
        return "Unknown"
    return therapy.intensity.value.capitalize()


def triglyceride_status(tg: Optional[float], config: EngineConfig = DEFAULT_CONFIG) -> Optional[str]:
    if tg is None:
        return None
    if tg < config.triglycerides.normal_below:
        return "Normal"
    if tg > config.triglycerides.severe_above:
        return "Severely Elevated"
    return "Elevated"


def _gap(current: Optional[float], target: float):
    if current is None:
        return None, None
    return current <= target, current - target


# ----------------------------
# Expected LDL-C lowering
# ----------------------------
# Moderate start for Intermediate and Low, high for everything else.
_MODERATE_START_CATEGORIES = frozenset({RiskCategory.INTERMEDIATE, RiskCategory.LOW})


def estimate_ldl_reduction(
    statin_intensity: Optional[StatinIntensity],
    ezetimibe: bool,
    pcsk9: bool,
    factors: LdlReductionFactors = DEFAULT_CONFIG.ldl_reduction,
) -> float:
    """Expected LDL-C reduction (percent) from a regimen, capped at factors.max_reduction.

    statin_intensity is None when there is no statin or its intensity is unknown.
    """
    remaining = 1.0
    if statin_intensity is not None:
        remaining *= factors.statin_remaining[statin_intensity]
    if ezetimibe:
        remaining *= factors.ezetimibe_remaining
    if pcsk9:
        remaining *= factors.pcsk9_remaining
    return min(1.0 - remaining, factors.max_reduction) * 100


def escalation_step(therapy: TherapyState, category: RiskCategory, config: EngineConfig = DEFAULT_CONFIG):
    """Next regimen change as (therapy class, resulting statin intensity), or None when nothing is left.

    Statin start or intensification comes first unless statins are not
    tolerated, then ezetimibe, then a PCSK9 inhibitor.
    """
    intolerant = therapy.intolerance is not Intolerance.NONE
    current = therapy.intensity if therapy.on_statin else None

    if not intolerant and not therapy.on_statin:
        start = StatinIntensity.MODERATE if category in _MODERATE_START_CATEGORIES else StatinIntensity.HIGH
        return TherapyClass.STATIN, start
    if not intolerant and can_intensify_statin(therapy, config):
        return TherapyClass.STATIN, StatinIntensity.HIGH
    if not therapy.ezetimibe:
        return TherapyClass.EZETIMIBE, current
    if not therapy.pcsk9:
        return TherapyClass.PCSK9, current
    return None


def _project_escalation(
    ldl: float,
    target: float,
    current: float,
    therapy: TherapyState,
    category: RiskCategory,
    config: EngineConfig,
):
    step = escalation_step(therapy, category, config)
    if step is None:
        return None, None, None
    cls, intensity = step
    projected_reduction = estimate_ldl_reduction(
        intensity,
        therapy.ezetimibe or cls is TherapyClass.EZETIMIBE,
        therapy.pcsk9 or cls is TherapyClass.PCSK9,
        config.ldl_reduction,
    )
    # back out the current regimen's effect, then apply the escalated one
    projected = ldl * (100 - projected_reduction) / (100 - current)
    return cls, projected, projected <= target


def assess_therapy(
    panel: NormalizedPanel,
    therapy: TherapyState,
    targets: TargetLevels,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> GapAssessment:
    tg_cfg = config.triglycerides

    max_reached = is_max_statin_reached(therapy, config)
    can_intensify = can_intensify_statin(therapy, config)
    on_max = is_on_maximum_therapy(therapy, config)
    intolerant = therapy.intolerance is not Intolerance.NONE

    at_ldl, ldl_gap = _gap(panel.ldl, targets.ldl)
    at_non_hdl, non_hdl_gap = _gap(panel.non_hdl, targets.non_hdl)
    at_apob, apob_gap = _gap(panel.apob, targets.apob)

    tg = panel.triglycerides
    hyper_tg = tg is not None and tg > tg_cfg.elevated_above
    severe_tg = tg is not None and tg > tg_cfg.severe_above

    mixed = (
        panel.ldl is not None and panel.hdl is not None and tg is not None
        and panel.ldl > targets.ldl
        and tg > tg_cfg.elevated_above
        and panel.hdl < config.recommendations.mixed_dyslipidemia_hdl_below
    )

    additional = 0.0
    if panel.ldl and panel.ldl > targets.ldl:
        additional = (panel.ldl - targets.ldl) / panel.ldl * 100

    statin_intensity = therapy.intensity if therapy.on_statin else None
    current_reduction = estimate_ldl_reduction(statin_intensity, therapy.ezetimibe, therapy.pcsk9, config.ldl_reduction)
    step = projected = reachable = None
    if at_ldl is False:
        step, projected, reachable = _project_escalation(
            panel.ldl, targets.ldl, current_reduction, therapy, targets.risk_category, config
        )

    add_trace(trace, "Gap_LDL", fmt_2dp(ldl_gap), f"atTarget={at_ldl}")
    if at_ldl is False:
        add_trace(trace, "Gap_escalation", step.value if step else None,
                  f"projectedLDL={fmt_2dp(projected)}; reachable={reachable}")
    add_trace(trace, "Gap_max_therapy", on_max,
              f"maxStatin={max_reached}; intolerance={therapy.intolerance.value}; ezetimibe={therapy.ezetimibe}")
    if mixed:
        add_trace(trace, "Gap_mixed_dyslipidemia", True, "LDL above target, TG >2.0, HDL <1.0")

    gaps = GapAssessment(
        current_therapy_intensity=therapy_intensity_label(therapy),
        at_ldl_target=at_ldl,
        at_non_hdl_target=at_non_hdl,
        at_apob_target=at_apob,
        ldl_gap=ldl_gap,
        non_hdl_gap=non_hdl_gap,
        apob_gap=apob_gap,
        can_intensify_statin=can_intensify,
        max_statin_reached=max_reached,
        statin_intolerance=intolerant,
        on_ezetimibe=therapy.ezetimibe,
        on_pcsk9=therapy.pcsk9,
        on_maximum_therapy=on_max,
        hypertriglyceridemia=hyper_tg,
        severe_triglycerides=severe_tg,
        triglyceride_status=triglyceride_status(tg, config),
        mixed_dyslipidemia=mixed,
        estimated_additional_ldl_reduction_percent=additional,
        estimated_current_ldl_reduction_percent=current_reduction,
        escalation_step=step,
        projected_ldl_after_escalation=projected,
        target_reachable_with_escalation=reachable,
    )
    logger.debug("Gap assessment: atLDL=%s onMax=%s", at_ldl, on_max)
    return gaps
