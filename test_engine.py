import unittest
from core_engine import InfusionDoseEngine
from models import (
    SolutionSpec, PatientContext, RateDoseInput, Concentration,
    DataTypeError, UnknownDrugError, display_round
)
from constants import DrugType, DoseUnit, MassUnit

class TestInfusionDoseEngine(unittest.TestCase):

    def setUp(self):
        """Standard 4 mg/mL dopamine syringe and a 10 mcg/mL octreotide syringe."""
        self.mg_conc = InfusionDoseEngine.concentration(200.0, 50.0, MassUnit.MG)
        self.mcg_conc = InfusionDoseEngine.concentration(500.0, 50.0, MassUnit.MCG)
        self.weight = 60.0

    def test_01_concentration(self):
        """
        Concentration = amount / (drug volume + diluent volume)
        """
        print("\nTEST 1: Concentration Derivation")
        solution = SolutionSpec(drug_amount=200.0, drug_volume_ml=20.0, diluent_volume_ml=30.0)
        conc = InfusionDoseEngine.solution_concentration(solution, DrugType.DOPAMINE)

        print(f"Total volume: {solution.total_volume_ml} mL")
        print(f"Concentration: {conc.value} {conc.label}")

        self.assertEqual(solution.total_volume_ml, 50.0)
        self.assertAlmostEqual(conc.value, 4.0)
        self.assertEqual(conc.unit, MassUnit.MG)
        self.assertEqual(conc.label, "mg/mL")
        self.assertAlmostEqual(conc.mcg_per_ml, 4000.0)

    def test_02_empty_volume_is_soft_zero(self):
        """
        No volume -> zero concentration, never a ZeroDivisionError.
        """
        print("\nTEST 2: Empty Syringe")
        conc = InfusionDoseEngine.concentration(200.0, 0.0)
        self.assertEqual(conc.value, 0.0)
        self.assertFalse(conc.is_computable)

        conc_neg = InfusionDoseEngine.concentration(200.0, -5.0)
        self.assertEqual(conc_neg.value, 0.0)

    def test_03_dopamine_weight_dose(self):
        """
        5 mL/hr of 4 mg/mL at 60 kg = (5 x 4 x 1000) / (60 x 60) = 5.56 mcg/kg/min
        """
        print("\nTEST 3: Dopamine Rate -> Dose")
        dose = InfusionDoseEngine.rate_to_weight_dose(5.0, self.mg_conc, self.weight)
        per_min = InfusionDoseEngine.rate_to_minute_dose(5.0, self.mg_conc)

        print(f"Weight-based: {dose:.2f} mcg/kg/min")
        print(f"Non-weight-based: {per_min:.2f} mcg/min")

        self.assertAlmostEqual(dose, 5.5556, places=4)
        self.assertAlmostEqual(round(dose, 2), 5.56)
        self.assertAlmostEqual(per_min, 333.3333, places=4)

    def test_04_octreotide_hourly(self):
        """
        mcg/mL concentrations skip the mg->mcg factor: 5 mL/hr x 10 mcg/mL = 50 mcg/hr
        """
        print("\nTEST 4: Octreotide Hourly Dose")
        self.assertAlmostEqual(self.mcg_conc.value, 10.0)
        self.assertAlmostEqual(InfusionDoseEngine.rate_to_hourly_dose(5.0, self.mcg_conc), 50.0)
        self.assertAlmostEqual(InfusionDoseEngine.hourly_dose_to_rate(25.0, self.mcg_conc), 2.5)

    def test_05_round_trip(self):
        """
        rate_to_dose(dose_to_rate(d)) == d for every dose form while C > 0
        """
        print("\nTEST 5: Round Trip")
        cases = [
            (DoseUnit.MCG_KG_MIN, self.mg_conc, 7.3),
            (DoseUnit.MCG_MIN, self.mg_conc, 120.0),
            (DoseUnit.MCG_HR, self.mcg_conc, 37.0),
            (DoseUnit.MCG_KG_MIN, Concentration(0.08, MassUnit.MG), 0.25),
        ]
        for unit, conc, dose in cases:
            rate = InfusionDoseEngine.dose_to_rate(dose, conc, unit, self.weight)
            back = InfusionDoseEngine.rate_to_dose(rate, conc, unit, self.weight)
            print(f"{dose} {unit.value} -> {rate:.3f} mL/hr -> {back:.3f}")
            self.assertAlmostEqual(back, dose, places=9)

    def test_06_zero_concentration_soft_zero(self):
        """
        Every conversion returns 0 when concentration <= 0, whatever the input.
        """
        print("\nTEST 6: Soft Zero on Empty Concentration")
        empty = Concentration(0.0, MassUnit.MG)
        for unit in DoseUnit:
            self.assertEqual(InfusionDoseEngine.dose_to_rate(10.0, empty, unit, self.weight), 0.0)
            self.assertEqual(InfusionDoseEngine.rate_to_dose(10.0, empty, unit, self.weight), 0.0)

        negative = Concentration(-1.0, MassUnit.MCG)
        self.assertEqual(InfusionDoseEngine.hourly_dose_to_rate(10.0, negative), 0.0)

    def test_07_zero_weight_soft_zero(self):
        """Weight-based forms need a weight; non-weight forms do not."""
        print("\nTEST 7: Soft Zero on Missing Weight")
        self.assertEqual(InfusionDoseEngine.rate_to_weight_dose(5.0, self.mg_conc, 0.0), 0.0)
        self.assertEqual(InfusionDoseEngine.weight_dose_to_rate(5.0, self.mg_conc, 0.0), 0.0)
        self.assertEqual(InfusionDoseEngine.rate_to_dose(5.0, self.mg_conc, DoseUnit.MCG_KG_MIN), 0.0)
        self.assertGreater(InfusionDoseEngine.rate_to_minute_dose(5.0, self.mg_conc), 0.0)

    def test_08_evaluate_flags_not_computable(self):
        """
        An empty syringe evaluates to zeros with is_computable False,
        so a zero dose is never read as a real clinical zero.
        """
        print("\nTEST 8: Evaluate Empty Syringe")
        solution = SolutionSpec(drug_amount=200.0, drug_volume_ml=0.0, diluent_volume_ml=0.0)
        reading = InfusionDoseEngine.evaluate(
            DrugType.DOPAMINE, solution, PatientContext(60.0), RateDoseInput(5.0)
        )
        self.assertFalse(reading.is_computable)
        self.assertEqual(reading.doses[DoseUnit.MCG_KG_MIN], 0.0)
        self.assertIsNone(reading.band)

        # Weightless dopamine is also not computable
        reading = InfusionDoseEngine.evaluate(
            DrugType.DOPAMINE, InfusionDoseEngine.default_solution(DrugType.DOPAMINE),
            PatientContext(0.0), RateDoseInput(5.0)
        )
        self.assertFalse(reading.is_computable)

        # Octreotide is not weight-based
        reading = InfusionDoseEngine.evaluate(
            DrugType.OCTREOTIDE, InfusionDoseEngine.default_solution(DrugType.OCTREOTIDE),
            PatientContext(0.0), RateDoseInput(5.0)
        )
        self.assertTrue(reading.is_computable)

    def test_09_evaluate_dose_request(self):
        """
        Noradrenaline 0.1 mcg/kg/min at 60 kg, 4 mg in 50 mL -> 4.5 mL/hr (= 6 mcg/min)
        """
        print("\nTEST 9: Evaluate Dose Request")
        reading = InfusionDoseEngine.evaluate(
            DrugType.NORADRENALINE, InfusionDoseEngine.default_solution(DrugType.NORADRENALINE),
            PatientContext(60.0), RateDoseInput(0.1, DoseUnit.MCG_KG_MIN)
        )
        print(f"Rate: {reading.rate_ml_hr:.2f} mL/hr, doses: {reading.as_display()['doses']}")

        self.assertAlmostEqual(reading.rate_ml_hr, 4.5)
        self.assertAlmostEqual(reading.doses[DoseUnit.MCG_MIN], 6.0)
        self.assertAlmostEqual(reading.doses[DoseUnit.MCG_KG_MIN], 0.1)
        self.assertEqual(reading.band, "weight_based")

    def test_10_wrong_dose_unit_rejected(self):
        """Octreotide is titrated in mcg/hr only."""
        with self.assertRaises(ValueError):
            InfusionDoseEngine.evaluate(
                DrugType.OCTREOTIDE, InfusionDoseEngine.default_solution(DrugType.OCTREOTIDE),
                PatientContext(60.0), RateDoseInput(1.0, DoseUnit.MCG_KG_MIN)
            )

    def test_11_input_sanitisation(self):
        """Negative volumes and non-numeric values never reach the formulas."""
        with self.assertRaises(ValueError):
            SolutionSpec(drug_amount=200.0, drug_volume_ml=-1.0, diluent_volume_ml=30.0)
        with self.assertRaises(DataTypeError):
            SolutionSpec(drug_amount="200", drug_volume_ml=20.0, diluent_volume_ml=30.0)
        with self.assertRaises(DataTypeError):
            PatientContext(weight_kg=None)
        with self.assertRaises(ValueError):
            SolutionSpec(drug_amount=float("nan"), drug_volume_ml=20.0, diluent_volume_ml=30.0)
        with self.assertRaises(ValueError):
            PatientContext(weight_kg=float("nan"))
        with self.assertRaises(ValueError):
            RateDoseInput(float("inf"))

        # NaN volume is a soft zero too
        conc = InfusionDoseEngine.concentration(200.0, float("nan"))
        self.assertEqual(conc.value, 0.0)
        self.assertFalse(conc.is_computable)

    def test_12_resolve_drug(self):
        self.assertEqual(InfusionDoseEngine.resolve_drug(" Dopamine "), DrugType.DOPAMINE)
        self.assertEqual(InfusionDoseEngine.resolve_drug(DrugType.OCTREOTIDE), DrugType.OCTREOTIDE)
        with self.assertRaises(UnknownDrugError):
            InfusionDoseEngine.resolve_drug("dobutamine")

    def test_13_safe_factory(self):
        """
        create_reading fills preparation defaults and returns errors instead of raising.
        """
        print("\nTEST 13: Safe Factory")
        res = InfusionDoseEngine.create_reading({'drug': 'dopamine', 'rate_ml_hr': 5.0})
        self.assertTrue(res.success, res.errors)
        self.assertAlmostEqual(res.reading.as_display()['doses']['mcg/kg/min'], 5.56)
        self.assertEqual(res.reading.band, "moderate")
        self.assertIsNotNone(res.audit_log)

        res = InfusionDoseEngine.create_reading({'drug': 'octreotide', 'dose': 25.0, 'dose_unit': 'mcg/hr'})
        self.assertTrue(res.success, res.errors)
        self.assertAlmostEqual(res.reading.rate_ml_hr, 2.5)

        res = InfusionDoseEngine.create_reading({'drug': 'heparin', 'rate_ml_hr': 5.0})
        self.assertFalse(res.success)
        self.assertIn("heparin", res.errors[0])

        res = InfusionDoseEngine.create_reading({'drug': 'dopamine', 'drug_volume_ml': -3.0})
        self.assertFalse(res.success)

        res = InfusionDoseEngine.create_reading({'drug': 'dopamine', 'rate_ml_hr': float("nan")})
        self.assertFalse(res.success)

    def test_14_display_rounds_half_up(self):
        """
        Octreotide 500 mcg in 5 + 75 mL = 6.25 mcg/mL; 0.5 mL/hr = 3.125 mcg/hr -> 3.13
        """
        print("\nTEST 14: Half-Up Display Rounding")
        solution = SolutionSpec(drug_amount=500.0, drug_volume_ml=5.0, diluent_volume_ml=75.0)
        reading = InfusionDoseEngine.evaluate(
            DrugType.OCTREOTIDE, solution, PatientContext(60.0), RateDoseInput(0.5)
        )
        display = reading.as_display()
        print(f"Dose: {reading.doses[DoseUnit.MCG_HR]} -> {display['doses']['mcg/hr']} mcg/hr")

        self.assertEqual(reading.doses[DoseUnit.MCG_HR], 3.125)
        self.assertEqual(display['doses']['mcg/hr'], 3.13)
        self.assertEqual(display_round(2.675), 2.68)
        self.assertEqual(display_round(0.125), 0.13)
        self.assertEqual(display_round(-0.125), -0.13)
        self.assertEqual(display_round(5.5555), 5.56)

if __name__ == '__main__':
    unittest.main()
