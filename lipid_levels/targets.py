# lipid_levels/targets.py
# Risk category + lipid targets.
#
# Ordered decision table, first match wins:
#   Secondary + (MI or multi-vessel)  → Extreme       LDL ≤1.4  nonHDL ≤2.2  apoB ≤0.65  ≥50%
#   Secondary (other)                 → Very High     LDL ≤1.8  nonHDL ≤2.6  apoB ≤0.8   ≥50%
#   Primary, risk ≥20                 → High          LDL ≤2.0  nonHDL ≤2.6  apoB ≤0.8   ≥50%
#   Primary, 10 ≤ risk < 20           → Intermediate  LDL ≤2.0  nonHDL ≤2.6  apoB ≤0.8   ≥30%
#   Primary, risk <10 or unknown      → Low           LDL ≤3.5  nonHDL ≤4.2  apoB ≤1.0   ≥30%
#
# Elevated Lp(a) (≥50 mg/dL) adds a stricter LDL target: max(LDL − 0.3, 1.4).
# Total: always returns a category.

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from lipid_levels.config import DEFAULT_CONFIG, EngineConfig
from lipid_levels.models import (
    NormalizedPanel,
    PreventionCategory,
    RiskCategory,
    RiskContext,
    SecondaryEvent,
    TargetLevels,
)
from lipid_levels.trace import Trace, add_trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierTargets:
    ldl: float
    non_hdl: float
    apob: float
    percent_reduction: int


TIER_TARGETS: Mapping[RiskCategory, TierTargets] = MappingProxyType({
    RiskCategory.EXTREME: TierTargets(ldl=1.4, non_hdl=2.2, apob=0.65, percent_reduction=50),
    RiskCategory.VERY_HIGH: TierTargets(ldl=1.8, non_hdl=2.6, apob=0.8, percent_reduction=50),
    RiskCategory.HIGH: TierTargets(ldl=2.0, non_hdl=2.6, apob=0.8, percent_reduction=50),
    RiskCategory.INTERMEDIATE: TierTargets(ldl=2.0, non_hdl=2.6, apob=0.8, percent_reduction=30),
    RiskCategory.LOW: TierTargets(ldl=3.5, non_hdl=4.2, apob=1.0, percent_reduction=30),
})

SECONDARY_CATEGORY: Mapping[SecondaryEvent, RiskCategory] = MappingProxyType({
    SecondaryEvent.MI: RiskCategory.EXTREME,
    SecondaryEvent.MULTI_VESSEL: RiskCategory.EXTREME,
    SecondaryEvent.NONE: RiskCategory.VERY_HIGH,
})

# (closed lower bound %, category), highest first
PRIMARY_RISK_BANDS: Tuple[Tuple[float, RiskCategory], ...] = (
    (20.0, RiskCategory.HIGH),
    (10.0, RiskCategory.INTERMEDIATE),
)


def categorize_risk(risk: RiskContext, trace: Optional[Trace] = None) -> RiskCategory:
    if risk.prevention is PreventionCategory.SECONDARY:
        cat = SECONDARY_CATEGORY[risk.secondary_event]
        add_trace(trace, "Category_secondary", risk.secondary_event.value, f"Category={cat.label}")
        return cat

    score = risk.risk_score
    if score is None:
        add_trace(trace, "Category_primary_no_score", None, "Risk score unavailable; default Low")
        return RiskCategory.LOW

    for lower, cat in PRIMARY_RISK_BANDS:
        if score >= lower:
            add_trace(trace, "Category_primary", score, f"Risk ≥{lower:g}% → {cat.label}")
            return cat

    add_trace(trace, "Category_primary", score, f"Risk <{PRIMARY_RISK_BANDS[-1][0]:g}% → Low Risk")
    return RiskCategory.LOW


def compute_targets(
    panel: NormalizedPanel,
    risk: RiskContext,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> TargetLevels:
    cat = categorize_risk(risk, trace)
    tier = TIER_TARGETS[cat]

    lpa_adjusted = None
    elevated = False
    if panel.lpa is not None and panel.lpa >= config.lpa.elevated_mgdl:
        elevated = True
        lpa_adjusted = round(max(tier.ldl - config.lpa.ldl_adjustment, config.lpa.adjusted_ldl_floor), 2)
        add_trace(
            trace,
            "Lpa_elevated",
            round(panel.lpa, 1),
            f"Lp(a) ≥{config.lpa.elevated_mgdl:g} mg/dL; LDL target tightened to {lpa_adjusted}",
        )

    targets = TargetLevels(
        risk_category=cat,
        ldl=tier.ldl,
        non_hdl=tier.non_hdl,
        apob=tier.apob,
        percent_reduction=tier.percent_reduction,
        lpa_adjusted_ldl=lpa_adjusted,
        has_elevated_lpa=elevated,
    )
    logger.debug("Targets: %s LDL≤%s nonHDL≤%s", cat.value, targets.ldl, targets.non_hdl)
    return targets
