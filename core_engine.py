"""
InfusionFlow: Core Dose/Rate Engine
===================================
The mathematical core that turns a prepared solution into a concentration
and converts between pump rate (mL/hr) and dose (mcg/kg/min, mcg/min, mcg/hr).

Degenerate inputs (no volume, no drug, no weight) never raise: they yield a
soft zero, and InfusionReading.is_computable tells the caller the value is
"not yet computable" rather than a clinical zero.
"""

import logging
from typing import Optional, Dict, Union

# Import Data Models
from models import (
    SolutionSpec,
    PatientContext,
    RateDoseInput,
    Concentration,
    InfusionReading,
    CalculationResult,
    AuditLog,
    UnknownDrugError,
    DataTypeError
)

# Import Constants & Drug Library
from constants import (
    INFUSION_CONSTANTS,
    DRUG_LIBRARY,
    DrugType,
    DoseUnit,
    MassUnit
)
from safety import SafetySupervisor

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = INFUSION_CONSTANTS.MINUTES_PER_HOUR

class InfusionDoseEngine:
    """
    The Mathematical Core.
    Translates Solution + Patient + Rate -> Doses (and back).
    """

    # --- DRUG LOOKUP ---

    @staticmethod
    def resolve_drug(drug: Union[DrugType, str]) -> DrugType:
        if isinstance(drug, DrugType):
            return drug
        try:
            return DrugType(str(drug).strip().lower())
        except ValueError:
            raise UnknownDrugError(drug) from None

    @staticmethod
    def default_solution(drug: DrugType) -> SolutionSpec:
        """The preparation the bedside calculator opens with."""
        props = DRUG_LIBRARY.get(drug)
        return SolutionSpec(
            drug_amount=props.default_amount,
            drug_volume_ml=props.default_drug_volume_ml,
            diluent_volume_ml=props.default_diluent_volume_ml
        )

    # --- 1. CONCENTRATION ---

    @staticmethod
    def concentration(drug_amount: float, total_volume_ml: float,
                      unit: MassUnit = MassUnit.MG) -> Concentration:
        """
        amount / volume. Zero (not an error) when the volume is empty.
        """
        if not total_volume_ml > 0:
            return Concentration(value=0.0, unit=unit)
        return Concentration(value=drug_amount / total_volume_ml, unit=unit)

    @staticmethod
    def solution_concentration(solution: SolutionSpec, drug: DrugType) -> Concentration:
        unit = DRUG_LIBRARY.get(drug).mass_unit
        return InfusionDoseEngine.concentration(solution.drug_amount, solution.total_volume_ml, unit)

    # --- 2. RATE -> DOSE ---

    @staticmethod
    def rate_to_weight_dose(rate_ml_hr: float, conc: Concentration, weight_kg: float) -> float:
        """mcg/kg/min = rate x conc x scale / (weight x 60)"""
        if not weight_kg > 0:
            return 0.0
        return (rate_ml_hr * conc.value * conc.unit.value) / (weight_kg * MINUTES_PER_HOUR)

    @staticmethod
    def rate_to_minute_dose(rate_ml_hr: float, conc: Concentration) -> float:
        """mcg/min = rate x conc x scale / 60"""
        return (rate_ml_hr * conc.value * conc.unit.value) / MINUTES_PER_HOUR

    @staticmethod
    def rate_to_hourly_dose(rate_ml_hr: float, conc: Concentration) -> float:
        """mcg/hr = rate x conc x scale"""
        return rate_ml_hr * conc.value * conc.unit.value

    # --- 3. DOSE -> RATE ---

    @staticmethod
    def weight_dose_to_rate(dose_mcg_kg_min: float, conc: Concentration, weight_kg: float) -> float:
        if not (conc.value > 0 and weight_kg > 0):
            return 0.0
        return (dose_mcg_kg_min * weight_kg * MINUTES_PER_HOUR) / (conc.value * conc.unit.value)

    @staticmethod
    def minute_dose_to_rate(dose_mcg_min: float, conc: Concentration) -> float:
        if not conc.value > 0:
            return 0.0
        return (dose_mcg_min * MINUTES_PER_HOUR) / (conc.value * conc.unit.value)

    @staticmethod
    def hourly_dose_to_rate(dose_mcg_hr: float, conc: Concentration) -> float:
        if not conc.value > 0:
            return 0.0
        return dose_mcg_hr / (conc.value * conc.unit.value)

    # --- 4. UNIT DISPATCH ---

    @staticmethod
    def rate_to_dose(rate_ml_hr: float, conc: Concentration, unit: DoseUnit,
                     weight_kg: Optional[float] = None) -> float:
        if not conc.value > 0:
            return 0.0
        if unit == DoseUnit.MCG_KG_MIN:
            return InfusionDoseEngine.rate_to_weight_dose(rate_ml_hr, conc, weight_kg or 0.0)
        if unit == DoseUnit.MCG_MIN:
            return InfusionDoseEngine.rate_to_minute_dose(rate_ml_hr, conc)
        if unit == DoseUnit.MCG_HR:
            return InfusionDoseEngine.rate_to_hourly_dose(rate_ml_hr, conc)
        raise ValueError(f"Unsupported dose unit: {unit}")

    @staticmethod
    def dose_to_rate(dose: float, conc: Concentration, unit: DoseUnit,
                     weight_kg: Optional[float] = None) -> float:
        if unit == DoseUnit.MCG_KG_MIN:
            return InfusionDoseEngine.weight_dose_to_rate(dose, conc, weight_kg or 0.0)
        if unit == DoseUnit.MCG_MIN:
            return InfusionDoseEngine.minute_dose_to_rate(dose, conc)
        if unit == DoseUnit.MCG_HR:
            return InfusionDoseEngine.hourly_dose_to_rate(dose, conc)
        raise ValueError(f"Unsupported dose unit: {unit}")

    # --- 5. FULL EVALUATION ---

    @staticmethod
    def evaluate(drug: DrugType, solution: SolutionSpec, patient: PatientContext,
                 request: RateDoseInput) -> InfusionReading:
        """
        Resolves the request to a pump rate, then derives every dose form the
        drug is titrated in.
        """
        props = DRUG_LIBRARY.get(drug)
        conc = InfusionDoseEngine.solution_concentration(solution, drug)

        if request.is_rate:
            rate = request.value
        else:
            if request.dose_unit not in props.dose_units:
                raise ValueError(f"{props.name} is not dosed in {request.dose_unit.value}")
            rate = InfusionDoseEngine.dose_to_rate(request.value, conc, request.dose_unit, patient.weight_kg)

        doses: Dict[DoseUnit, float] = {
            unit: InfusionDoseEngine.rate_to_dose(rate, conc, unit, patient.weight_kg)
            for unit in props.dose_units
        }

        # A weight-normalised dose needs a weight; everything needs a concentration
        needs_weight = DoseUnit.MCG_KG_MIN in props.dose_units
        computable = conc.is_computable and (patient.has_weight or not needs_weight)

        band = None
        if computable:
            for unit, value in doses.items():
                found = DRUG_LIBRARY.band_for(drug, value, unit)
                if found is not None:
                    band = found.name
                    break

        logger.debug("%s: conc=%.4f %s rate=%.3f computable=%s",
                     props.name, conc.value, conc.label, rate, computable)

        return InfusionReading(
            drug=drug,
            concentration=conc,
            rate_ml_hr=rate,
            doses=doses,
            is_computable=computable,
            band=band
        )

    @staticmethod
    def create_reading(data: dict) -> CalculationResult:
        """
        SAFE FACTORY: The main entry point for the UI/API.
        Expects keys: drug, and optionally drug_amount, drug_volume_ml,
        diluent_volume_ml, weight_kg, rate_ml_hr or (dose, dose_unit).
        Missing preparation fields fall back to the drug's defaults.
        """
        try:
            drug = InfusionDoseEngine.resolve_drug(data.get('drug'))
            default = InfusionDoseEngine.default_solution(drug)

            solution = SolutionSpec(
                drug_amount=data.get('drug_amount', default.drug_amount),
                drug_volume_ml=data.get('drug_volume_ml', default.drug_volume_ml),
                diluent_volume_ml=data.get('diluent_volume_ml', default.diluent_volume_ml)
            )
            patient = PatientContext(weight_kg=data.get('weight_kg', INFUSION_CONSTANTS.DEFAULT_WEIGHT_KG))

            if data.get('dose') is not None:
                request = RateDoseInput(value=data['dose'], dose_unit=DoseUnit(data.get('dose_unit')))
            else:
                request = RateDoseInput(value=data.get('rate_ml_hr', 0.0))

            reading = InfusionDoseEngine.evaluate(drug, solution, patient, request)
            alerts = SafetySupervisor.check_infusion(reading)

            return CalculationResult(
                success=True,
                reading=reading,
                alerts=alerts,
                audit_log=AuditLog(action="infusion_reading", inputs_hash=hash(str(sorted(data.items()))))
            )

        except (UnknownDrugError, DataTypeError, ValueError) as e:
            return CalculationResult(success=False, errors=[str(e)])
