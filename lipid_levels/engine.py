# lipid_levels/engine.py
# Lipid therapy decision pipeline.
#
# Stages (each a pure function of the previous stage's output):
#   normalize → validate → compute_targets → assess_therapy
#     → generate_recommendations → assess_coverage
#
# Validation errors block their fields: the panel handed to the later stages
# has those values (and anything derived from them) cleared, so the rules that
# read them are skipped rather than fed implausible numbers. strict=True
# raises PhysiologicalRangeError instead.
#
# Rule trace:
#     - trace: list of rule firings with values + effects

import logging
from typing import Any, Dict, List, Mapping, Union

from lipid_levels.config import DEFAULT_CONFIG, VERSION, EngineConfig
from lipid_levels.coverage import assess_coverage
from lipid_levels.gaps import assess_therapy
from lipid_levels.models import Evaluation, PatientParameters
from lipid_levels.recommendations import generate_recommendations
from lipid_levels.targets import compute_targets
from lipid_levels.trace import add_trace
from lipid_levels.units import normalize
from lipid_levels.validation import validate

logger = logging.getLogger(__name__)


def evaluate(
    params: Union[PatientParameters, Mapping[str, Any]],
    config: EngineConfig = DEFAULT_CONFIG,
    strict: bool = False,
) -> Evaluation:
    if not isinstance(params, PatientParameters):
        params = PatientParameters.model_validate(params)

    trace: List[Dict[str, Any]] = []
    add_trace(trace, "Engine_start", VERSION["engine"], "Evaluation started")

    panel = normalize(params, config, trace)
    validation = validate(panel, config, trace)
    if strict:
        validation.raise_for_errors()

    blocked = validation.blocked_fields
    if blocked:
        add_trace(trace, "Fields_blocked", blocked, "Excluded from downstream rules")
    usable = panel.without(blocked)

    targets = compute_targets(usable, params.risk, config, trace)
    gaps = assess_therapy(usable, params.therapy, targets, config, trace)
    recommendation = generate_recommendations(usable, params.risk, params.therapy, gaps, targets, config, trace)
    coverage = assess_coverage(usable, params.risk, params.therapy, gaps, config, trace)

    add_trace(trace, "Engine_end", VERSION["engine"], "Evaluation complete")
    logger.info(
        "Evaluated patient: category=%s atLDL=%s pcsk9Considered=%s eligible=%s",
        targets.risk_category.value,
        gaps.at_ldl_target,
        recommendation.pcsk9_considered,
        coverage.eligible,
    )

    return Evaluation(
        version=dict(VERSION),
        panel=panel,
        validation=validation,
        targets=targets,
        gaps=gaps,
        recommendation=recommendation,
        coverage=coverage,
        trace=trace,
    )
