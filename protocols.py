# protocols.py
import logging
import math
from typing import Optional

from models import (
    BicarbonateInput, BicarbonatePlan, AdministrationOption, InfusionPhase,
    BicarbonateValidationError, CalculationResult, AuditLog, DataTypeError
)
from constants import SBC_CONSTANTS, INFUSION_CONSTANTS
from safety import SafetySupervisor

logger = logging.getLogger(__name__)

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def _as_float(name: str, value) -> float:
    if isinstance(value, bool):
        raise DataTypeError(f"Field '{name}' must be numeric, got {type(value)}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise DataTypeError(f"Field '{name}' must be numeric, got {value!r}") from None

def drip_rate(rate_ml_hr: float, drop_factor: float) -> float:
    """drops/min = mL/hr x drops/mL / 60"""
    return (rate_ml_hr * drop_factor) / INFUSION_CONSTANTS.MINUTES_PER_HOUR

class BicarbonateProtocol:
    """
    Sodium bicarbonate (595 mmol/L, 10 mL ampules) correction of metabolic acidosis.
    Deficit (mEq) = 0.5 x Wt x (Target HCO3 - Current HCO3), given 50% over
    the first 4 hours and 50% over the next 20 hours.
    """

    @staticmethod
    def validate(data: BicarbonateInput) -> BicarbonateInput:
        """
        Fail-fast checks in the order the bedside form reports them.
        Returns a sanitised copy with every field as float.
        """
        if _is_blank(data.weight_kg) or _is_blank(data.target_hco3):
            raise BicarbonateValidationError("Please fill in all required fields")

        weight = _as_float('weight_kg', data.weight_kg)
        target = _as_float('target_hco3', data.target_hco3)
        current = (SBC_CONSTANTS.DEFAULT_CURRENT_HCO3 if _is_blank(data.current_hco3)
                   else _as_float('current_hco3', data.current_hco3))
        drop_factor = (SBC_CONSTANTS.DEFAULT_DROP_FACTOR if _is_blank(data.drop_factor)
                       else _as_float('drop_factor', data.drop_factor))

        if not (math.isfinite(weight) and weight > 0):
            raise BicarbonateValidationError("Weight must be greater than 0")
        if not (math.isfinite(target) and math.isfinite(current) and target > current):
            raise BicarbonateValidationError("Target HCO3 must be greater than current HCO3")
        if not (math.isfinite(drop_factor) and drop_factor > 0):
            raise BicarbonateValidationError("Drop factor must be greater than 0")

        return BicarbonateInput(
            weight_kg=weight, target_hco3=target,
            current_hco3=current, drop_factor=drop_factor
        )

    @staticmethod
    def calculate_deficit(weight_kg: float, target_hco3: float, current_hco3: float) -> float:
        return SBC_CONSTANTS.DISTRIBUTION_FACTOR * weight_kg * (target_hco3 - current_hco3)

    @staticmethod
    def sbc_volume_for(deficit_meq: float) -> float:
        # 1 mmol == 1 mEq for HCO3-
        return (deficit_meq / SBC_CONSTANTS.CONCENTRATION_MMOL_L) * 1000.0

    @staticmethod
    def _phase(label: str, duration_hr: float, sbc_ml: float, d5_ml: float,
               total_ml: float, drop_factor: Optional[float]) -> InfusionPhase:
        rate = total_ml / duration_hr
        return InfusionPhase(
            label=label,
            duration_hr=duration_hr,
            sbc_volume_ml=sbc_ml,
            d5_volume_ml=d5_ml,
            total_volume_ml=total_ml,
            rate_ml_hr=rate,
            drops_per_min=drip_rate(rate, drop_factor) if drop_factor is not None else None
        )

    @staticmethod
    def build_plan(data: BicarbonateInput) -> BicarbonatePlan:
        """
        Validates, then computes the deficit and the three administration
        options from the same 50/50 split. Values keep full precision.
        """
        clean = BicarbonateProtocol.validate(data)
        bag = SBC_CONSTANTS.D5_BAG_VOLUME_ML

        deficit = BicarbonateProtocol.calculate_deficit(clean.weight_kg, clean.target_hco3, clean.current_hco3)
        required_ml = BicarbonateProtocol.sbc_volume_for(deficit)
        ampules = required_ml / SBC_CONSTANTS.AMPULE_SIZE_ML

        undiluted, diluted, two_bag = [], [], []
        for label, hours, fraction in SBC_CONSTANTS.PHASES:
            sbc_ml = required_ml * fraction

            # A. Straight from the ampules via syringe pump
            undiluted.append(BicarbonateProtocol._phase(label, hours, sbc_ml, 0.0, sbc_ml, None))

            # B. SBC added on top of a full 500 mL D5% bag
            diluted.append(BicarbonateProtocol._phase(
                label, hours, sbc_ml, bag, sbc_ml + bag, clean.drop_factor))

            # C. Bag made up to 500 mL: D5% tops up the SBC, total never exceeds one bag
            d5_ml = bag - sbc_ml if bag - sbc_ml > 0 else 0.0
            total_ml = min(sbc_ml + d5_ml, bag)
            two_bag.append(BicarbonateProtocol._phase(
                label, hours, sbc_ml, d5_ml, total_ml, clean.drop_factor))

        logger.debug("SBC plan: deficit=%.2f mEq, volume=%.2f mL, ampules=%.2f",
                     deficit, required_ml, ampules)

        return BicarbonatePlan(
            inputs=clean,
            deficit_meq=deficit,
            required_sbc_ml=required_ml,
            required_ampules=ampules,
            undiluted=AdministrationOption(
                name="undiluted",
                description="Direct SBC administration (rarely used)",
                phases=undiluted
            ),
            diluted=AdministrationOption(
                name="diluted_d5",
                description="SBC added to two 500 mL D5% bags, one per phase",
                phases=diluted
            ),
            two_bag=AdministrationOption(
                name="two_bag_500",
                description="Two separate 500 mL bags made up with SBC and D5%",
                phases=two_bag
            )
        )

    @staticmethod
    def create_plan(data: dict) -> CalculationResult:
        """
        SAFE FACTORY: The main entry point for the UI/API.
        Validation failures come back as user-facing messages, never partial plans.
        """
        try:
            inputs = BicarbonateInput(
                weight_kg=data.get('weight_kg'),
                target_hco3=data.get('target_hco3'),
                current_hco3=data.get('current_hco3', SBC_CONSTANTS.DEFAULT_CURRENT_HCO3),
                drop_factor=data.get('drop_factor', SBC_CONSTANTS.DEFAULT_DROP_FACTOR)
            )
            plan = BicarbonateProtocol.build_plan(inputs)
            alerts = SafetySupervisor.check_bicarbonate(plan)

            return CalculationResult(
                success=True,
                plan=plan,
                alerts=alerts,
                audit_log=AuditLog(action="bicarbonate_plan", inputs_hash=hash(str(sorted(data.items()))))
            )

        except (BicarbonateValidationError, DataTypeError) as e:
            logger.info("SBC plan rejected: %s", e)
            return CalculationResult(success=False, errors=[str(e)])
