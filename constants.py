from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
VERSION = "1.0.0"

class DrugType(Enum):
    DOPAMINE = "dopamine"
    NORADRENALINE = "noradrenaline"
    OCTREOTIDE = "octreotide"

class MassUnit(Enum):
    """Values are the factor that converts one unit to micrograms."""
    MG = 1000.0
    MCG = 1.0

    @property
    def label(self) -> str:
        return "mg" if self is MassUnit.MG else "mcg"

class DoseUnit(Enum):
    MCG_KG_MIN = "mcg/kg/min"   # Weight-normalised (pressors)
    MCG_MIN = "mcg/min"         # Flat dose (pressors)
    MCG_HR = "mcg/hr"           # Hourly dose (octreotide)

class DropFactor(Enum):
    """Values represent drops per mL (gtt/mL)"""
    MACRO_10 = 10
    MACRO_15 = 15
    MACRO_STANDARD = 16
    MACRO_20 = 20
    MICRO_DRIP = 60

@dataclass(frozen=True)
class DoseBand:
    name: str
    unit: DoseUnit
    low: float
    high: float

    def contains(self, dose: float) -> bool:
        return self.low <= dose <= self.high

@dataclass(frozen=True)
class DrugProperties:
    name: str
    mass_unit: MassUnit
    dose_units: Tuple[DoseUnit, ...]

    # Default bedside preparation
    default_amount: float
    default_drug_volume_ml: float
    default_diluent_volume_ml: float

    bands: Tuple[DoseBand, ...] = ()
    diluent_name: str = "Normal Saline"

class INFUSION_CONSTANTS:
    MINUTES_PER_HOUR = 60.0
    DEFAULT_WEIGHT_KG = 60.0

    # Syringe pump titration range (mL/hr)
    RATE_MIN_ML_HR = 0.0
    RATE_MAX_ML_HR = 20.0

    DISPLAY_DECIMALS = 2

class SBC_CONSTANTS:
    CONCENTRATION_MMOL_L = 595.0   # 1 mmol == 1 mEq for HCO3-
    AMPULE_SIZE_ML = 10.0
    MMOL_PER_AMPULE = CONCENTRATION_MMOL_L * (AMPULE_SIZE_ML / 1000.0)
    DISTRIBUTION_FACTOR = 0.5      # Deficit = 0.5 x Wt x (Target - Current)

    D5_BAG_VOLUME_ML = 500.0

    # Two-phase correction: 50% over 4 hrs, remaining 50% over 20 hrs
    PHASES: List[Tuple[str, float, float]] = [
        ("first_4_hours", 4.0, 0.5),
        ("next_20_hours", 20.0, 0.5),
    ]

    DEFAULT_CURRENT_HCO3 = 18.0
    DEFAULT_DROP_FACTOR = DropFactor.MACRO_STANDARD.value

    # Above this a drip cannot be counted by eye
    MAX_COUNTABLE_DROPS_MIN = 100.0

class DRUG_LIBRARY:
    """
    The Pharmacopoeia of Infusions.
    Defines how each drug is prepared and which doses it is titrated in.
    """
    SPECS: Dict[DrugType, DrugProperties] = {
        DrugType.DOPAMINE: DrugProperties(
            name="Dopamine",
            mass_unit=MassUnit.MG,
            dose_units=(DoseUnit.MCG_KG_MIN, DoseUnit.MCG_MIN),
            default_amount=200.0, default_drug_volume_ml=20.0, default_diluent_volume_ml=30.0,
            bands=(
                DoseBand("low", DoseUnit.MCG_KG_MIN, 0.0, 3.0),       # Renal / dopaminergic
                DoseBand("moderate", DoseUnit.MCG_KG_MIN, 3.0, 10.0), # Beta-1 inotropy
                DoseBand("high", DoseUnit.MCG_KG_MIN, 10.0, 20.0),    # Alpha vasoconstriction
            )
        ),
        DrugType.NORADRENALINE: DrugProperties(
            name="Noradrenaline",
            mass_unit=MassUnit.MG,
            dose_units=(DoseUnit.MCG_KG_MIN, DoseUnit.MCG_MIN),
            default_amount=4.0, default_drug_volume_ml=4.0, default_diluent_volume_ml=46.0,
            bands=(
                DoseBand("weight_based", DoseUnit.MCG_KG_MIN, 0.0, 3.0),
                DoseBand("non_weight_based", DoseUnit.MCG_MIN, 0.0, 350.0),
            )
        ),
        DrugType.OCTREOTIDE: DrugProperties(
            name="Octreotide",
            mass_unit=MassUnit.MCG,
            dose_units=(DoseUnit.MCG_HR,),
            default_amount=500.0, default_drug_volume_ml=5.0, default_diluent_volume_ml=45.0,
            bands=(
                DoseBand("desired", DoseUnit.MCG_HR, 25.0, 50.0),     # Variceal bleed infusion
            )
        ),
    }

    @staticmethod
    def get(drug: DrugType) -> DrugProperties:
        return DRUG_LIBRARY.SPECS[drug]

    @staticmethod
    def band_for(drug: DrugType, dose: float, unit: DoseUnit) -> Optional[DoseBand]:
        """First band of this unit that contains the dose (bands share edges)."""
        for band in DRUG_LIBRARY.get(drug).bands:
            if band.unit == unit and band.contains(dose):
                return band
        return None

    @staticmethod
    def bands_for_unit(drug: DrugType, unit: DoseUnit) -> List[DoseBand]:
        return [b for b in DRUG_LIBRARY.get(drug).bands if b.unit == unit]
