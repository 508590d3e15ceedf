import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lipid_levels.engine import evaluate
from lipid_levels.models import RiskCategory, TherapyClass, TherapySeverity
from lipid_levels.recommendations import LIFESTYLE, STATIN_INITIATION

CLASS_ORDER = [
    TherapyClass.STATIN,
    TherapyClass.EZETIMIBE,
    TherapyClass.PCSK9,
    TherapyClass.OTHER,
    TherapyClass.LIFESTYLE,
]

MAX_ATORVA = {"statin": "atorvastatin", "intensity": "high", "dose_mg": 80}


def _mmol(v):
    return {"value": v, "unit": "mmol/L"}


def _run(ldl=None, risk=None, therapy=None, **extra):
    params = {"risk": risk or {}, "therapy": therapy or {}}
    if ldl is not None:
        params["ldl"] = _mmol(ldl)
    params.update(extra)
    return evaluate(params)


def test_intermediate_risk_without_statin_starts_moderate_intensity():
    ev = _run(ldl=3.0, risk={"prevention": "primary", "risk_score": 15})
    assert ev.targets.risk_category is RiskCategory.INTERMEDIATE
    assert ev.targets.ldl == 2.0
    rec = ev.recommendation
    assert rec.statin.change == "Initiate moderate-intensity statin therapy"
    assert rec.ezetimibe is None
    assert rec.pcsk9 is None
    assert rec.summary[0].startswith("Start moderate-intensity statin")


def test_secondary_mi_on_maximal_therapy_flags_pcsk9():
    ev = _run(
        ldl=2.0,
        risk={"prevention": "secondary", "secondary_event": "mi"},
        therapy={**MAX_ATORVA, "ezetimibe": True},
    )
    assert ev.targets.risk_category is RiskCategory.EXTREME
    assert ev.targets.ldl == 1.4
    assert ev.gaps.at_ldl_target is False
    rec = ev.recommendation
    assert rec.pcsk9_considered
    assert rec.pcsk9.change == "Consider PCSK9 inhibitor therapy"
    assert rec.statin.change == "Continue maximum statin therapy"
    assert rec.ezetimibe.change == "Continue ezetimibe therapy"
    assert "Consider PCSK9 inhibitor for secondary prevention" in rec.summary


def test_very_high_risk_uses_higher_pcsk9_threshold():
    risk = {"prevention": "secondary", "secondary_event": "none"}
    therapy = {**MAX_ATORVA, "ezetimibe": True}
    assert not _run(ldl=2.2, risk=risk, therapy=therapy).recommendation.pcsk9_considered
    assert _run(ldl=2.5, risk=risk, therapy=therapy).recommendation.pcsk9_considered


def test_primary_prevention_pcsk9_depends_on_fh():
    therapy = {**MAX_ATORVA, "ezetimibe": True}
    ev = _run(ldl=4.0, risk={"risk_score": 25}, therapy=therapy)
    assert ev.recommendation.pcsk9.change == (
        "Consider PCSK9 inhibitor therapy if familial hypercholesterolemia is confirmed"
    )
    ev = _run(ldl=4.0, risk={"risk_score": 25, "familial_hypercholesterolemia": False}, therapy=therapy)
    assert ev.recommendation.pcsk9 is None
    ev = _run(ldl=3.0, risk={"risk_score": 25}, therapy=therapy)
    assert ev.recommendation.pcsk9 is None


def test_pcsk9_not_considered_without_ezetimibe():
    ev = _run(ldl=3.0, risk={"prevention": "secondary", "secondary_event": "mi"}, therapy=MAX_ATORVA)
    assert not ev.recommendation.pcsk9_considered
    assert ev.recommendation.ezetimibe.change == "Add ezetimibe therapy"


def test_already_on_pcsk9_continues():
    ev = _run(ldl=1.2, risk={"prevention": "secondary"}, therapy={**MAX_ATORVA, "ezetimibe": True, "pcsk9": True})
    assert ev.recommendation.pcsk9.change == "Continue PCSK9 inhibitor therapy"
    assert not ev.recommendation.pcsk9_considered
    assert ev.recommendation.statin.change == "Continue current statin therapy"


def test_low_risk_statin_rules():
    ev = _run(ldl=5.2, risk={"risk_score": 5})
    assert ev.recommendation.statin.change == "Consider statin therapy despite low risk due to very high LDL-C"
    ev = _run(ldl=3.0, risk={"risk_score": 5})
    assert ev.recommendation.statin.change == "Statin therapy not routinely recommended for low-risk patients"
    assert ev.recommendation.summary == ["Focus on lifestyle modifications"]


def test_high_risk_starts_high_intensity():
    ev = _run(ldl=3.0, risk={"risk_score": 22})
    assert ev.recommendation.statin.change == "Initiate high-intensity statin therapy"


def test_intensify_when_below_ceiling():
    ev = _run(ldl=3.0, risk={"risk_score": 25}, therapy={"statin": "rosuvastatin", "intensity": "moderate", "dose_mg": 10})
    assert ev.recommendation.statin.change == "Intensify current statin therapy"
    assert "Increase rosuvastatin dose to achieve greater LDL-C reduction" in ev.recommendation.summary
    assert ev.recommendation.ezetimibe.change == "Add ezetimibe therapy"


def test_intolerance_outcomes():
    ev = _run(ldl=3.0, risk={"prevention": "secondary"}, therapy={"intolerance": "complete"})
    assert ev.recommendation.statin.change == "Statin therapy not feasible due to documented intolerance"
    assert ev.recommendation.ezetimibe.change == "Add ezetimibe therapy"

    therapy = {"statin": "atorvastatin", "intensity": "low", "dose_mg": 10, "intolerance": "partial"}
    ev = _run(ldl=3.0, risk={"prevention": "secondary"}, therapy=therapy)
    assert ev.recommendation.statin.change == "Continue maximum tolerated statin dose"


def test_blocked_ldl_never_escalates():
    therapy = {"statin": "atorvastatin", "intensity": "moderate", "dose_mg": 20}
    ev = _run(ldl=12.0, risk={"prevention": "secondary"}, therapy=therapy)
    assert "ldl" in ev.validation.blocked_fields
    rec = ev.recommendation
    assert rec.statin.change == "Continue current statin therapy"
    assert rec.ezetimibe is None
    assert rec.pcsk9 is None


def test_other_therapies():
    ev = _run(ldl=3.0, risk={"risk_score": 15}, triglycerides=_mmol(6.0))
    fibrate = ev.recommendation.other_therapies[0]
    assert fibrate.therapy == "Consider fibrate therapy"
    assert fibrate.severity is TherapySeverity.WARNING

    ev = _run(ldl=3.0, risk={"risk_score": 15}, triglycerides=_mmol(2.5), hdl=_mmol(0.9))
    assert [o.therapy for o in ev.recommendation.other_therapies] == ["Consider fenofibrate as add-on therapy"]

    ev = _run(ldl=3.0, risk={"risk_score": 15}, lpa={"value": 60, "unit": "mg/dL"})
    others = ev.recommendation.other_therapies
    assert [(o.therapy, o.severity) for o in others] == [
        ("More aggressive LDL-C targets recommended", TherapySeverity.WARNING),
        ("Consider family screening for Lp(a)", TherapySeverity.INFO),
    ]
    assert "More aggressive LDL-C targets due to elevated Lp(a)" in ev.recommendation.summary


def test_initiation_table_covers_every_category():
    assert set(STATIN_INITIATION) == set(RiskCategory)


def test_items_ordered_by_class_with_rationale():
    rng = random.Random(42)
    statins = ["none", "atorvastatin", "rosuvastatin", "simvastatin", "pravastatin"]
    for _ in range(300):
        statin = rng.choice(statins)
        therapy = {
            "statin": statin,
            "intensity": None if statin == "none" else rng.choice(["low", "moderate", "high"]),
            "dose_mg": None if statin == "none" else rng.choice([5, 10, 20, 40, 80]),
            "ezetimibe": rng.random() < 0.5,
            "pcsk9": rng.random() < 0.2,
            "intolerance": rng.choice(["none", "none", "partial", "complete"]),
        }
        risk = {
            "prevention": rng.choice(["primary", "secondary"]),
            "secondary_event": rng.choice(["none", "mi", "multi_vessel"]),
            "risk_score": rng.choice([None, rng.uniform(0, 40)]),
        }
        ev = _run(
            ldl=round(rng.uniform(0.8, 7.0), 2),
            risk=risk,
            therapy=therapy,
            triglycerides=_mmol(round(rng.uniform(0.6, 8.0), 2)),
            hdl=_mmol(round(rng.uniform(0.6, 2.5), 2)),
            lpa={"value": rng.choice([10, 45, 80]), "unit": "mg/dL"},
        )
        items = ev.recommendation.items
        ranks = [CLASS_ORDER.index(i.therapy_class) for i in items]
        assert ranks == sorted(ranks)
        assert items[0].therapy_class is TherapyClass.STATIN
        assert [i.text for i in items[-4:]] == list(LIFESTYLE)
        assert all(i.rationale for i in items)
        assert ev.recommendation.pcsk9_considered == (
            ev.recommendation.pcsk9 is not None and ev.recommendation.pcsk9.change.startswith("Consider")
        )


def test_escalation_rationale_states_projected_ldl():
    mi = {"prevention": "secondary", "secondary_event": "mi"}
    therapy = {**MAX_ATORVA, "ezetimibe": True}
    ev = _run(ldl=2.0, risk=mi, therapy=therapy)
    assert ev.recommendation.pcsk9.rationale.endswith(
        "Estimated LDL-C after this step: 0.8 mmol/L (reaches the ≤1.4 mmol/L target)"
    )
    # the statin line is not the escalation step
    assert "Estimated LDL-C" not in ev.recommendation.statin.rationale

    ev = _run(ldl=3.0, risk={"risk_score": 25}, therapy={"statin": "rosuvastatin", "intensity": "moderate", "dose_mg": 10})
    assert ev.recommendation.statin.rationale.endswith(
        "Estimated LDL-C after this step: 2.3 mmol/L (still above the ≤2 mmol/L target)"
    )
    assert "Estimated LDL-C" not in ev.recommendation.ezetimibe.rationale


def test_no_projection_when_at_target_or_ldl_blocked():
    ev = _run(ldl=1.2, risk={"prevention": "secondary", "secondary_event": "mi"}, therapy={**MAX_ATORVA, "ezetimibe": True})
    assert all("Estimated LDL-C" not in i.rationale for i in ev.recommendation.items)

    ev = _run(ldl=12.0, risk={"prevention": "secondary"}, therapy={"statin": "atorvastatin", "intensity": "moderate", "dose_mg": 20})
    assert ev.gaps.projected_ldl_after_escalation is None
    assert all("Estimated LDL-C" not in i.rationale for i in ev.recommendation.items)
