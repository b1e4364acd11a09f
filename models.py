"""
InfusionFlow: Data Dictionary & Variable Definitions
====================================================
This module defines the value structs exchanged between the presentation
layer and the dose/rate engine: Inputs (Bedside), Derived values (Engine),
and Outputs (Prescription + Safety).

NO LOGIC is implemented here beyond input sanitisation. The arithmetic lives
in core_engine.py and protocols.py.
"""

import math
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict
from datetime import datetime
from constants import VERSION, DrugType, MassUnit, DoseUnit, SBC_CONSTANTS, INFUSION_CONSTANTS

class BicarbonateValidationError(ValueError):
    """Raised when a bicarbonate correction cannot be planned from the given inputs."""
    pass

class DataTypeError(TypeError):
    """Raised when inputs are wrong python types (str instead of float)."""
    pass

class UnknownDrugError(KeyError):
    """Raised when a calculator is requested for a drug outside the library."""
    def __str__(self):
        return f"Unknown drug: {self.args[0]}" if self.args else "Unknown drug"

def _require_numeric(owner: object, names: List[str]) -> None:
    for name in names:
        val = getattr(owner, name)
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise DataTypeError(f"Field '{name}' must be numeric, got {type(val)}")
        if not math.isfinite(val):
            raise ValueError(f"Field '{name}' must be a finite number, got {val}")

def display_round(value: float, places: int = INFUSION_CONSTANTS.DISPLAY_DECIMALS) -> float:
    """Half-up rounding, as the bedside calculators show it (3.125 -> 3.13)."""
    return float(Decimal(repr(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))

# --- 1. INPUT LAYER (What the Clinician Enters) ---

@dataclass(frozen=True)
class SolutionSpec:
    """
    The bag or syringe as prepared at the bedside.
    drug_amount is in the drug's native mass unit (mg or mcg).
    """
    drug_amount: float
    drug_volume_ml: float
    diluent_volume_ml: float

    def __post_init__(self):
        _require_numeric(self, ['drug_amount', 'drug_volume_ml', 'diluent_volume_ml'])
        if not self.drug_amount >= 0: raise ValueError(f"Invalid drug amount: {self.drug_amount}")
        if not self.drug_volume_ml >= 0: raise ValueError(f"Invalid drug volume: {self.drug_volume_ml}")
        if not self.diluent_volume_ml >= 0: raise ValueError(f"Invalid diluent volume: {self.diluent_volume_ml}")

    @property
    def total_volume_ml(self) -> float:
        return self.drug_volume_ml + self.diluent_volume_ml

@dataclass(frozen=True)
class PatientContext:
    weight_kg: float = INFUSION_CONSTANTS.DEFAULT_WEIGHT_KG

    def __post_init__(self):
        _require_numeric(self, ['weight_kg'])

    @property
    def has_weight(self) -> bool:
        return self.weight_kg > 0

@dataclass(frozen=True)
class RateDoseInput:
    """Either a pump rate (mL/hr) or a dose; dose_unit is None for a rate."""
    value: float
    dose_unit: Optional[DoseUnit] = None

    def __post_init__(self):
        _require_numeric(self, ['value'])

    @property
    def is_rate(self) -> bool:
        return self.dose_unit is None

@dataclass(frozen=True)
class BicarbonateInput:
    """
    Raw form values for the SBC calculator.
    Required fields may be None (empty form); the protocol rejects them.
    """
    weight_kg: Optional[float]
    target_hco3: Optional[float]
    current_hco3: float = SBC_CONSTANTS.DEFAULT_CURRENT_HCO3
    drop_factor: float = SBC_CONSTANTS.DEFAULT_DROP_FACTOR

# --- 2. DERIVED LAYER (Engine Values) ---

@dataclass(frozen=True)
class Concentration:
    """
    Drug per mL of final solution.
    The unit's value is its mcg scale, so every dose formula multiplies by
    unit.value instead of a literal 1000.
    """
    value: float
    unit: MassUnit

    @property
    def is_computable(self) -> bool:
        return self.value > 0

    @property
    def mcg_per_ml(self) -> float:
        return self.value * self.unit.value

    @property
    def label(self) -> str:
        return f"{self.unit.label}/mL"

# --- 3. OUTPUT LAYER (The Actionable Results) ---

@dataclass
class SafetyAlerts:
    """
    Boolean flags and warning strings for the UI.
    """
    not_computable: bool = False          # Soft zero: concentration or weight missing
    rate_out_of_range: bool = False       # Outside syringe pump titration range
    dose_above_range: bool = False        # Above the highest titration band
    dose_below_range: bool = False        # Below the lowest titration band
    two_bag_volume_capped: bool = False   # SBC phase volume exceeds one D5% bag
    drip_uncountable: bool = False        # > 100 drops/min

    messages: List[str] = field(default_factory=list)

    @property
    def has_alerts(self) -> bool:
        return any(v for k, v in asdict(self).items() if k != 'messages')

@dataclass
class InfusionReading:
    """
    One evaluation of a drug at a pump rate.
    doses maps every dose form the drug supports to its value.
    """
    drug: DrugType
    concentration: Concentration
    rate_ml_hr: float
    doses: Dict[DoseUnit, float]
    is_computable: bool
    band: Optional[str] = None

    def as_display(self) -> dict:
        return {
            "drug": self.drug.value,
            "concentration": display_round(self.concentration.value),
            "concentration_unit": self.concentration.label,
            "rate_ml_hr": display_round(self.rate_ml_hr),
            "doses": {unit.value: display_round(v) for unit, v in self.doses.items()},
            "computable": self.is_computable,
            "band": self.band,
        }

@dataclass
class InfusionPhase:
    label: str
    duration_hr: float
    sbc_volume_ml: float
    d5_volume_ml: float
    total_volume_ml: float
    rate_ml_hr: float
    drops_per_min: Optional[float] = None  # Not given for undiluted pump delivery

    def as_display(self) -> dict:
        out = {
            "label": self.label,
            "duration_hr": self.duration_hr,
            "sbc_volume_ml": display_round(self.sbc_volume_ml),
            "d5_volume_ml": display_round(self.d5_volume_ml),
            "total_volume_ml": display_round(self.total_volume_ml),
            "rate_ml_hr": display_round(self.rate_ml_hr),
        }
        if self.drops_per_min is not None:
            out["drops_per_min"] = display_round(self.drops_per_min)
        return out

@dataclass
class AdministrationOption:
    name: str
    description: str
    phases: List[InfusionPhase]

@dataclass
class BicarbonatePlan:
    """Full-precision plan; round only through as_display()."""
    inputs: BicarbonateInput
    deficit_meq: float
    required_sbc_ml: float
    required_ampules: float
    undiluted: AdministrationOption
    diluted: AdministrationOption
    two_bag: AdministrationOption

    @property
    def options(self) -> List[AdministrationOption]:
        return [self.undiluted, self.diluted, self.two_bag]

    def as_display(self) -> dict:
        return {
            "deficit_meq": display_round(self.deficit_meq),
            "required_sbc_ml": display_round(self.required_sbc_ml),
            "required_ampules": display_round(self.required_ampules),
            "options": {
                opt.name: {
                    "description": opt.description,
                    "phases": [p.as_display() for p in opt.phases],
                }
                for opt in self.options
            },
        }

@dataclass
class AuditLog:
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    action: str = "calculation"
    inputs_hash: int = 0
    model_version: str = VERSION

@dataclass
class CalculationResult:
    """Standardized response format for API/UI."""
    success: bool
    reading: Optional[InfusionReading] = None
    plan: Optional[BicarbonatePlan] = None
    errors: List[str] = field(default_factory=list)
    alerts: SafetyAlerts = field(default_factory=SafetyAlerts)
    audit_log: Optional[AuditLog] = None
