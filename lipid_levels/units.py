# lipid_levels/units.py
# Unit normalization.
#
# Canonical units: cholesterol fractions + triglycerides mmol/L, apoB g/L,
# Lp(a) mg/dL, height cm, weight kg.
# - Unit strings are matched case-insensitively, ignoring spaces
# - A value with an unrecognized (or missing) unit is passed through as-is and
#   listed in unverified_fields; normalization itself never fails
# - Lp(a) molar → mass uses the versioned, configurable estimate and leaves a
#   conversion note behind

import logging
from typing import Dict, List, Mapping, Optional, Tuple

from lipid_levels.config import (
    APOB_MGDL_PER_GL,
    CHOLESTEROL_MGDL_PER_MMOLL,
    CM_PER_FOOT,
    CM_PER_INCH,
    DEFAULT_CONFIG,
    KG_PER_LB,
    TRIGLYCERIDE_MGDL_PER_MMOLL,
    EngineConfig,
    LpaConversion,
)
from lipid_levels.models import Measurement, NormalizedPanel, PatientParameters
from lipid_levels.trace import Trace, add_trace

logger = logging.getLogger(__name__)


def _unit_key(unit: Optional[str]) -> str:
    return "".join(str(unit or "").split()).lower()


# Multiplier from each accepted unit into the canonical unit.
_CHOLESTEROL_UNITS: Mapping[str, float] = {
    "mmol/l": 1.0,
    "mg/dl": 1.0 / CHOLESTEROL_MGDL_PER_MMOLL,
}
_TRIGLYCERIDE_UNITS: Mapping[str, float] = {
    "mmol/l": 1.0,
    "mg/dl": 1.0 / TRIGLYCERIDE_MGDL_PER_MMOLL,
}
_APOB_UNITS: Mapping[str, float] = {
    "g/l": 1.0,
    "mg/dl": 1.0 / APOB_MGDL_PER_GL,
}
_HEIGHT_UNITS: Mapping[str, float] = {
    "cm": 1.0,
    "m": 100.0,
    "in": CM_PER_INCH,
    "inch": CM_PER_INCH,
    "inches": CM_PER_INCH,
    "ft": CM_PER_FOOT,
}
_WEIGHT_UNITS: Mapping[str, float] = {
    "kg": 1.0,
    "lb": KG_PER_LB,
    "lbs": KG_PER_LB,
}


def _lpa_units(conversion: LpaConversion) -> Mapping[str, float]:
    return {"mg/dl": 1.0, "nmol/l": conversion.nmoll_to_mgdl}


def _convert(value: float, from_unit: str, to_unit: str, table: Mapping[str, float]) -> Optional[float]:
    src = table.get(_unit_key(from_unit))
    dst = table.get(_unit_key(to_unit))
    if src is None or dst is None:
        return None
    return float(value) * src / dst


# ----------------------------
# Pairwise converters (either direction)
# ----------------------------
def convert_cholesterol(value: float, from_unit: str, to_unit: str) -> Optional[float]:
    return _convert(value, from_unit, to_unit, _CHOLESTEROL_UNITS)


def convert_triglycerides(value: float, from_unit: str, to_unit: str) -> Optional[float]:
    return _convert(value, from_unit, to_unit, _TRIGLYCERIDE_UNITS)


def convert_apob(value: float, from_unit: str, to_unit: str) -> Optional[float]:
    return _convert(value, from_unit, to_unit, _APOB_UNITS)


def convert_lpa(value: float, from_unit: str, to_unit: str,
                conversion: LpaConversion = DEFAULT_CONFIG.lpa) -> Optional[float]:
    src, dst = _unit_key(from_unit), _unit_key(to_unit)
    if src == dst and src in ("mg/dl", "nmol/l"):
        return float(value)
    if (src, dst) == ("mg/dl", "nmol/l"):
        return float(value) * conversion.mgdl_to_nmoll
    if (src, dst) == ("nmol/l", "mg/dl"):
        return float(value) * conversion.nmoll_to_mgdl
    return None


def height_from_feet_inches(feet: Optional[float], inches: Optional[float] = None) -> Optional[Measurement]:
    if feet is None and inches is None:
        return None
    total_in = float(feet or 0) * 12 + float(inches or 0)
    return Measurement(value=total_in, unit="in")


def calculate_bmi(height_cm: Optional[float], weight_kg: Optional[float]) -> Optional[float]:
    if not height_cm or not weight_kg:
        return None
    m = height_cm / 100.0
    return weight_kg / (m * m)


# ----------------------------
# Panel normalization
# ----------------------------
def _normalize_one(
    name: str,
    m: Optional[Measurement],
    table: Mapping[str, float],
    unverified: List[str],
) -> Optional[float]:
    if m is None:
        return None
    factor = table.get(_unit_key(m.unit))
    if factor is None:
        logger.warning("Unrecognized unit %r for %s; value left unconverted", m.unit, name)
        unverified.append(name)
        return float(m.value)
    return float(m.value) * factor


def normalize(
    params: PatientParameters,
    config: EngineConfig = DEFAULT_CONFIG,
    trace: Optional[Trace] = None,
) -> NormalizedPanel:
    unverified: List[str] = []
    notes: List[str] = []
    derived: List[str] = []

    values: Dict[str, Optional[float]] = {}
    fields: Tuple[Tuple[str, Optional[Measurement], Mapping[str, float]], ...] = (
        ("total_cholesterol", params.total_cholesterol, _CHOLESTEROL_UNITS),
        ("ldl", params.ldl, _CHOLESTEROL_UNITS),
        ("hdl", params.hdl, _CHOLESTEROL_UNITS),
        ("non_hdl", params.non_hdl, _CHOLESTEROL_UNITS),
        ("triglycerides", params.triglycerides, _TRIGLYCERIDE_UNITS),
        ("apob", params.apob, _APOB_UNITS),
        ("lpa", params.lpa, _lpa_units(config.lpa)),
        ("height_cm", params.height, _HEIGHT_UNITS),
        ("weight_kg", params.weight, _WEIGHT_UNITS),
    )
    for name, m, table in fields:
        values[name] = _normalize_one(name, m, table, unverified)

    if params.lpa is not None and _unit_key(params.lpa.unit) == "nmol/l":
        note = (
            f"Lp(a) {params.lpa.value:g} nmol/L converted to {values['lpa']:.1f} mg/dL "
            f"using estimated factor {config.lpa.nmoll_to_mgdl:g} ({config.lpa.version}); "
            "true conversion depends on apo(a) isoform size."
        )
        notes.append(note)
        add_trace(trace, "Lpa_molar_conversion", params.lpa.value, note)

    if values["non_hdl"] is None and values["total_cholesterol"] is not None and values["hdl"] is not None:
        values["non_hdl"] = values["total_cholesterol"] - values["hdl"]
        derived.append("non_hdl")
        add_trace(trace, "NonHDL_derived", round(values["non_hdl"], 2), "non-HDL = TC − HDL")

    bmi = calculate_bmi(values["height_cm"], values["weight_kg"])
    if bmi is not None:
        derived.append("bmi")

    if unverified:
        add_trace(trace, "Units_unverified", list(unverified), "Values passed through without conversion")

    return NormalizedPanel(
        **values,
        bmi=bmi,
        sbp=params.sbp,
        dbp=params.dbp,
        age=params.age,
        derived_fields=derived,
        unverified_fields=unverified,
        conversion_notes=notes,
    )
