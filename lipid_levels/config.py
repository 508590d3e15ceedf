# lipid_levels/config.py
# Versioned, immutable configuration for the lipid therapy engine.
#
# Everything a rule reads (conversion factors, thresholds, dose ceilings) lives
# here as frozen records with documented defaults. Functions take an explicit
# EngineConfig argument; DEFAULT_CONFIG is shared read-only.

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from lipid_levels.models import StatinIntensity, StatinMolecule


VERSION = {
    "engine": "lipid-levels v1.0",
    "targets": "CCS dyslipidemia tiers (Extreme/VeryHigh/High/Intermediate/Low)",
    "coverage": "PCSK9 Special Authority checklist v1.0",
    "lpaConversion": "lpa-est-2024.1 (1 mg/dL ≈ 2.5 nmol/L)",
}


# ----------------------------
# Unit conversion factors
# ----------------------------
CHOLESTEROL_MGDL_PER_MMOLL = 38.67
TRIGLYCERIDE_MGDL_PER_MMOLL = 88.5
APOB_MGDL_PER_GL = 100.0
CM_PER_INCH = 2.54
CM_PER_FOOT = 30.48
KG_PER_LB = 0.45359237


@dataclass(frozen=True)
class LpaConversion:
    """Lp(a) mass/molar conversion.

    The true factor depends on apo(a) isoform size, so both directions are
    estimates and are carried with an explicit version string.

    Attributes:
        version: identifier surfaced in conversion notes and warnings.
        mgdl_to_nmoll: multiply mg/dL by this to estimate nmol/L.
        nmoll_to_mgdl: multiply nmol/L by this to estimate mg/dL.
        elevated_mgdl: Lp(a) at or above this (mg/dL) is elevated.
        ldl_adjustment: mmol/L subtracted from the LDL target when elevated.
        adjusted_ldl_floor: adjusted LDL target never drops below this.
    """

    version: str = "lpa-est-2024.1"
    mgdl_to_nmoll: float = 2.5
    nmoll_to_mgdl: float = 0.4
    elevated_mgdl: float = 50.0
    ldl_adjustment: float = 0.3
    adjusted_ldl_floor: float = 1.4

    def is_reciprocal(self, tolerance: float = 0.01) -> bool:
        return abs(self.mgdl_to_nmoll * self.nmoll_to_mgdl - 1.0) <= tolerance


@dataclass(frozen=True)
class TriglycerideThresholds:
    """Triglyceride cut points in mmol/L."""

    normal_below: float = 1.7
    elevated_above: float = 2.0
    severe_above: float = 5.0


@dataclass(frozen=True)
class RecommendationThresholds:
    """LDL cut points (mmol/L) used by the recommendation rules.

    Attributes:
        low_risk_statin_ldl: low-risk patients at or above this LDL are
            considered for a statin anyway (possible FH).
        pcsk9_secondary_ldl: secondary prevention LDL needed before a PCSK9
            inhibitor is suggested.
        pcsk9_extreme_ldl: same threshold for the Extreme tier, which carries
            the stricter 1.4 mmol/L target.
        pcsk9_primary_ldl: primary prevention LDL needed (FH pathway).
        mixed_dyslipidemia_hdl_below: HDL cut point for mixed dyslipidemia.
    """

    low_risk_statin_ldl: float = 5.0
    pcsk9_secondary_ldl: float = 2.5
    pcsk9_extreme_ldl: float = 2.0
    pcsk9_primary_ldl: float = 3.5
    mixed_dyslipidemia_hdl_below: float = 1.0


@dataclass(frozen=True)
class CoverageThresholds:
    """Payer criteria for PCSK9 inhibitor coverage (LDL in mmol/L)."""

    secondary_ldl: float = 2.0
    primary_ldl: float = 3.5
    minimum_months_on_max_therapy: int = 3


# Fraction of LDL-C left after each statin intensity.
STATIN_LDL_REMAINING: Mapping[StatinIntensity, float] = MappingProxyType({
    StatinIntensity.LOW: 0.80,
    StatinIntensity.MODERATE: 0.65,
    StatinIntensity.HIGH: 0.50,
})


@dataclass(frozen=True)
class LdlReductionFactors:
    """Expected LDL-C lowering per regimen component.

    Components stack multiplicatively on the LDL-C that remains: a
    high-intensity statin leaves 50%, ezetimibe then leaves 76% of that, a
    PCSK9 inhibitor 40% of what is left after that.

    Attributes:
        statin_remaining: fraction left per statin intensity.
        ezetimibe_remaining: fraction left after adding ezetimibe.
        pcsk9_remaining: fraction left after adding a PCSK9 inhibitor.
        max_reduction: ceiling on the combined reduction (fraction).
    """

    statin_remaining: Mapping[StatinIntensity, float] = field(default_factory=lambda: STATIN_LDL_REMAINING)
    ezetimibe_remaining: float = 0.76
    pcsk9_remaining: float = 0.40
    max_reduction: float = 0.90


# Highest licensed daily dose (mg) per statin molecule.
MAX_STATIN_DOSE_MG: Mapping[StatinMolecule, float] = MappingProxyType({
    StatinMolecule.ATORVASTATIN: 80.0,
    StatinMolecule.ROSUVASTATIN: 40.0,
    StatinMolecule.SIMVASTATIN: 40.0,
    StatinMolecule.PRAVASTATIN: 80.0,
    StatinMolecule.LOVASTATIN: 40.0,
    StatinMolecule.FLUVASTATIN: 80.0,
    StatinMolecule.PITAVASTATIN: 4.0,
})


@dataclass(frozen=True)
class EngineConfig:
    lpa: LpaConversion = field(default_factory=LpaConversion)
    triglycerides: TriglycerideThresholds = field(default_factory=TriglycerideThresholds)
    recommendations: RecommendationThresholds = field(default_factory=RecommendationThresholds)
    coverage: CoverageThresholds = field(default_factory=CoverageThresholds)
    ldl_reduction: LdlReductionFactors = field(default_factory=LdlReductionFactors)
    max_statin_dose_mg: Mapping[StatinMolecule, float] = field(default_factory=lambda: MAX_STATIN_DOSE_MG)


DEFAULT_CONFIG = EngineConfig()
