# lipid_levels/output_adapter.py
# Output adapter: converts an Evaluation into a camelCase contract for the host
# application, plus a plain-text quick reference.

from typing import Any, Dict, List, Optional, Set

from lipid_levels.models import Evaluation, ValidationIssue


def _fmt_num(x: Optional[float], unit: str = "", dp: int = 2) -> Optional[str]:
    if x is None:
        return None
    v = round(float(x), dp)
    return f"{v:g} {unit}".strip() if unit else f"{v:g}"


def _unused_fields(evaluation: Evaluation) -> Set[str]:
    """Measured fields the engine did not use: blocked ones and values derived from them."""
    panel = evaluation.panel
    used = panel.without(evaluation.validation.blocked_fields)
    return {name for name in ("ldl", "non_hdl", "apob") if panel.has(name) and not used.has(name)}


def _fmt_measured(evaluation: Evaluation, name: str, unit: str) -> Optional[str]:
    text = _fmt_num(evaluation.panel.get(name), unit)
    if text is not None and name in _unused_fields(evaluation):
        text += " (blocked)"
    return text


def _issue(i: ValidationIssue) -> Dict[str, Any]:
    out = {
        "field": i.field,
        "severity": i.severity.value,
        "kind": i.kind.value,
        "message": i.message,
        "fields": list(i.fields),
    }
    if i.note is not None:
        out["note"] = i.note
    return out


def _action(a) -> Optional[Dict[str, str]]:
    if a is None:
        return None
    return {"change": a.change, "rationale": a.rationale}


def to_output_contract(evaluation: Evaluation) -> Dict[str, Any]:
    """
    CamelCase contract.
    Every key is always present; missing analytes come through as None.
    """
    panel = evaluation.panel
    t = evaluation.targets
    g = evaluation.gaps
    rec = evaluation.recommendation
    cov = evaluation.coverage
    val = evaluation.validation
    blocked = _unused_fields(evaluation)

    targets = [
        {
            "marker": "LDL-C",
            "current": _fmt_measured(evaluation, "ldl", "mmol/L"),
            "blocked": "ldl" in blocked,
            "target": f"≤{t.ldl:g} mmol/L",
            "atTarget": g.at_ldl_target,
            "gap": g.ldl_gap,
        },
        {
            "marker": "Non-HDL-C",
            "current": _fmt_measured(evaluation, "non_hdl", "mmol/L"),
            "blocked": "non_hdl" in blocked,
            "target": f"≤{t.non_hdl:g} mmol/L",
            "atTarget": g.at_non_hdl_target,
            "gap": g.non_hdl_gap,
        },
        {
            "marker": "ApoB",
            "current": _fmt_measured(evaluation, "apob", "g/L"),
            "blocked": "apob" in blocked,
            "target": f"≤{t.apob:g} g/L",
            "atTarget": g.at_apob_target,
            "gap": g.apob_gap,
        },
    ]

    return {
        "version": dict(evaluation.version),
        "riskCategory": t.risk_category.label,
        "targets": {
            "ldl": t.ldl,
            "nonHDL": t.non_hdl,
            "apoB": t.apob,
            "percentReduction": t.percent_reduction,
            "lpaAdjustedLDL": t.lpa_adjusted_ldl,
            "hasElevatedLpa": t.has_elevated_lpa,
        },
        "targetTable": targets,
        "gaps": {
            "currentTherapyIntensity": g.current_therapy_intensity,
            "atLDLTarget": g.at_ldl_target,
            "atNonHDLTarget": g.at_non_hdl_target,
            "atApoBTarget": g.at_apob_target,
            "ldlGap": g.ldl_gap,
            "nonHDLGap": g.non_hdl_gap,
            "apoBGap": g.apob_gap,
            "canIntensifyStatin": g.can_intensify_statin,
            "maxStatinReached": g.max_statin_reached,
            "statinIntolerance": g.statin_intolerance,
            "onEzetimibe": g.on_ezetimibe,
            "onPCSK9": g.on_pcsk9,
            "onMaximumTherapy": g.on_maximum_therapy,
            "hypertriglyceridemia": g.hypertriglyceridemia,
            "severeTriglycerides": g.severe_triglycerides,
            "triglycerideStatus": g.triglyceride_status,
            "mixedDyslipidemia": g.mixed_dyslipidemia,
            "estimatedAdditionalLDLReductionPercent": g.estimated_additional_ldl_reduction_percent,
            "estimatedCurrentLDLReductionPercent": g.estimated_current_ldl_reduction_percent,
            "escalationStep": g.escalation_step.value if g.escalation_step else None,
            "projectedLDLAfterEscalation": g.projected_ldl_after_escalation,
            "targetReachableWithEscalation": g.target_reachable_with_escalation,
        },
        "recommendations": {
            "summary": list(rec.summary),
            "statin": _action(rec.statin),
            "ezetimibe": _action(rec.ezetimibe),
            "pcsk9": _action(rec.pcsk9),
            "pcsk9Considered": rec.pcsk9_considered,
            "otherTherapies": [
                {"therapy": o.therapy, "rationale": o.rationale, "severity": o.severity.value}
                for o in rec.other_therapies
            ],
            "lifestyle": list(rec.lifestyle),
            "items": [
                {
                    "class": i.therapy_class.value,
                    "text": i.text,
                    "rationale": i.rationale,
                    "severity": i.severity.value if i.severity else None,
                }
                for i in rec.items
            ],
        },
        "coverage": {
            "eligible": cov.eligible,
            "criteriaMet": list(cov.criteria_met),
            "criteriaNotMet": list(cov.criteria_not_met),
            "notes": list(cov.notes),
            "documentationRequired": list(cov.documentation_required),
        },
        "validation": {
            "isValid": val.is_valid,
            "errors": [_issue(i) for i in val.errors],
            "warnings": [_issue(i) for i in val.warnings],
            "blockedFields": val.blocked_fields,
        },
        "units": {
            "unverifiedFields": list(panel.unverified_fields),
            "conversionNotes": list(panel.conversion_notes),
            "derivedFields": list(panel.derived_fields),
        },
        "trace": [dict(step) for step in evaluation.trace],
    }


def render_quick_text(evaluation: Evaluation) -> str:
    panel = evaluation.panel
    t = evaluation.targets
    g = evaluation.gaps
    rec = evaluation.recommendation
    cov = evaluation.coverage

    lines: List[str] = []
    lines.append(f"{evaluation.version['engine']}: Quick Reference")
    lines.append(f"Risk category: {t.risk_category.label} (≥{t.percent_reduction}% LDL-C reduction)")

    for issue in evaluation.validation.errors:
        lines.append(f"! {issue.message}")

    lines.append("Targets")
    lines.append(f"• LDL-C: {_fmt_measured(evaluation, 'ldl', 'mmol/L') or '—'} → target ≤{t.ldl:g} mmol/L")
    if t.lpa_adjusted_ldl is not None:
        lines.append(f"  Elevated Lp(a): tighter LDL-C target ≤{t.lpa_adjusted_ldl:g} mmol/L")
    if panel.has("non_hdl"):
        lines.append(f"• Non-HDL-C: {_fmt_measured(evaluation, 'non_hdl', 'mmol/L')} → target ≤{t.non_hdl:g} mmol/L")
    if panel.has("apob"):
        lines.append(f"• ApoB: {_fmt_measured(evaluation, 'apob', 'g/L')} → target ≤{t.apob:g} g/L")

    lines.append(f"Current therapy intensity: {g.current_therapy_intensity}")
    if rec.summary:
        lines.append("Plan: " + " / ".join(rec.summary))

    lines.append(f"PCSK9 coverage: {'eligible' if cov.eligible else 'not eligible'}")
    for c in cov.criteria_not_met:
        lines.append(f"  - {c}")
    return "\n".join(lines)
