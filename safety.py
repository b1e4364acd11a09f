# safety.py
from models import SafetyAlerts, InfusionReading, BicarbonatePlan
from constants import DRUG_LIBRARY, INFUSION_CONSTANTS, SBC_CONSTANTS

class SafetySupervisor:
    """
    Non-blocking checks on a finished calculation.
    Returns a SafetyAlerts object (Flags); never changes the numbers.
    """
    @staticmethod
    def check_infusion(reading: InfusionReading) -> SafetyAlerts:
        alerts = SafetyAlerts()
        props = DRUG_LIBRARY.get(reading.drug)

        # 1. Soft zero: the engine could not compute a real value
        if not reading.is_computable:
            alerts.not_computable = True
            alerts.messages.append(
                f"{props.name}: enter drug amount, total volume and weight to calculate"
            )
            return alerts

        # 2. Pump titration range (0-20 mL/hr on the bedside slider)
        rate = reading.rate_ml_hr
        if rate < INFUSION_CONSTANTS.RATE_MIN_ML_HR or rate > INFUSION_CONSTANTS.RATE_MAX_ML_HR:
            alerts.rate_out_of_range = True
            alerts.messages.append(
                f"Rate {rate:.2f} mL/hr is outside the "
                f"{INFUSION_CONSTANTS.RATE_MIN_ML_HR:g}-{INFUSION_CONSTANTS.RATE_MAX_ML_HR:g} mL/hr titration range"
            )

        # 3. Titration bands
        for unit, dose in reading.doses.items():
            bands = DRUG_LIBRARY.bands_for_unit(reading.drug, unit)
            if not bands:
                continue
            floor = min(b.low for b in bands)
            ceiling = max(b.high for b in bands)
            if dose > ceiling:
                alerts.dose_above_range = True
                alerts.messages.append(
                    f"{props.name} {dose:.2f} {unit.value} is above the usual maximum of {ceiling:g} {unit.value}"
                )
            elif dose < floor:
                alerts.dose_below_range = True
                alerts.messages.append(
                    f"{props.name} {dose:.2f} {unit.value} is below the usual minimum of {floor:g} {unit.value}"
                )

        return alerts

    @staticmethod
    def check_bicarbonate(plan: BicarbonatePlan) -> SafetyAlerts:
        alerts = SafetyAlerts()
        bag = SBC_CONSTANTS.D5_BAG_VOLUME_ML

        # 1. Two-bag cap: a phase needing more SBC than one bag holds is truncated
        for phase in plan.two_bag.phases:
            if phase.sbc_volume_ml > bag:
                alerts.two_bag_volume_capped = True
                alerts.messages.append(
                    f"Two-bag option ({phase.label}): {phase.sbc_volume_ml:.2f} mL SBC exceeds a "
                    f"{bag:g} mL bag; bag holds no D5% and delivers only {phase.total_volume_ml:.2f} mL"
                )

        # 2. Gravity drips too fast to count by eye
        for option in (plan.diluted, plan.two_bag):
            for phase in option.phases:
                if phase.drops_per_min is not None and phase.drops_per_min > SBC_CONSTANTS.MAX_COUNTABLE_DROPS_MIN:
                    alerts.drip_uncountable = True
                    alerts.messages.append(
                        f"{option.name} ({phase.label}): {phase.drops_per_min:.0f} drops/min is too fast "
                        f"to count; use an infusion pump"
                    )

        return alerts
