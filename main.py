# main.py

import logging
from typing import Optional, Dict
from datetime import datetime
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Import Data Models & Logic
from models import UnknownDrugError, SafetyAlerts, CalculationResult
from constants import VERSION, DRUG_LIBRARY, INFUSION_CONSTANTS, SBC_CONSTANTS, DoseUnit, DropFactor
from core_engine import InfusionDoseEngine
from protocols import BicarbonateProtocol

# --- 1. CONFIGURATION & LOGGING ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("infusionflow-api")

app = FastAPI(
    title="InfusionFlow API",
    version=VERSION,
    description="Dose/Rate engine for dopamine, noradrenaline, octreotide and "
                "sodium bicarbonate infusions. \n\n"
                "**WARNING**: Reference tool only. Always follow institutional protocols and physician orders.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def read_root():
    return {"status": "active", "message": "InfusionFlow API is running successfully!"}

@app.get("/health")
def health_check():
    """K8s/AWS Health Probe"""
    return {"status": "active", "version": VERSION, "module": "infusionflow-dose-engine"}

# --- 2. INPUT SCHEMA ---
# Preparation fields are optional: omitted values fall back to the drug's defaults.
# Ranges are deliberately loose; soft zeros and bands are the engine's job.
class SolutionRequest(BaseModel):
    drug_amount: Optional[float] = Field(None, ge=0, description="Drug amount in mg (mcg for octreotide)")
    drug_volume_ml: Optional[float] = Field(None, ge=0, description="Volume of drug drawn up (mL)")
    diluent_volume_ml: Optional[float] = Field(None, ge=0, description="Normal saline added (mL)")
    weight_kg: Optional[float] = Field(None, ge=0, le=300.0, description="Patient weight (kg)")

class RateRequest(SolutionRequest):
    rate_ml_hr: float = Field(..., ge=0, description="Pump rate (mL/hr)")

    class Config:
        json_schema_extra = {
            "example": {
                "drug_amount": 200.0, "drug_volume_ml": 20.0,
                "diluent_volume_ml": 30.0, "weight_kg": 60.0, "rate_ml_hr": 5.0
            }
        }

class DoseRequest(SolutionRequest):
    dose: float = Field(..., ge=0, description="Desired dose")
    dose_unit: DoseUnit = Field(..., description="mcg/kg/min, mcg/min or mcg/hr")

    class Config:
        json_schema_extra = {
            "example": {
                "drug_amount": 500.0, "drug_volume_ml": 5.0,
                "diluent_volume_ml": 45.0, "dose": 25.0, "dose_unit": "mcg/hr"
            }
        }

class BicarbonateRequest(BaseModel):
    # Left unconstrained so the protocol can report its own bedside messages
    weight_kg: Optional[float] = Field(None, description="Patient weight (kg)")
    target_hco3: Optional[float] = Field(None, description="Target HCO3 (mEq/L)")
    current_hco3: Optional[float] = Field(SBC_CONSTANTS.DEFAULT_CURRENT_HCO3, description="Current HCO3 (mEq/L)")
    drop_factor: Optional[float] = Field(SBC_CONSTANTS.DEFAULT_DROP_FACTOR, description="Giving set drops/mL")

    class Config:
        json_schema_extra = {
            "example": {"weight_kg": 60.0, "target_hco3": 24.0, "current_hco3": 18.0, "drop_factor": 16}
        }

# --- 3. RESPONSE SCHEMA ---
class InfusionResponse(BaseModel):
    drug: str
    concentration: float
    concentration_unit: str
    rate_ml_hr: float
    doses: Dict[str, float]
    computable: bool
    band: Optional[str] = None
    alerts: SafetyAlerts
    generated_at: datetime = Field(default_factory=datetime.now)

class BicarbonateResponse(BaseModel):
    deficit_meq: float
    required_sbc_ml: float
    required_ampules: float
    options: Dict[str, dict]
    alerts: SafetyAlerts
    generated_at: datetime = Field(default_factory=datetime.now)

# --- 4. ENDPOINTS ---

def _unwrap(result: CalculationResult, context: str) -> CalculationResult:
    if not result.success:
        message = "; ".join(result.errors)
        logger.warning(f"{context} Validation Error: {message}")
        raise HTTPException(status_code=422, detail=f"Validation Error: {message}")
    return result

def _run_infusion(drug: str, payload: dict) -> dict:
    try:
        drug_type = InfusionDoseEngine.resolve_drug(drug)
    except UnknownDrugError as e:
        raise HTTPException(status_code=404, detail=str(e))

    payload = {k: v for k, v in payload.items() if v is not None}
    payload['drug'] = drug_type
    logger.info(f"Infusion calculation for {drug_type.value}: {payload}")

    try:
        result = _unwrap(InfusionDoseEngine.create_reading(payload), "Infusion")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Internal Engine Failure: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Dose Engine Error")

    return {**result.reading.as_display(), "alerts": result.alerts}

@app.get("/drugs")
def list_drugs():
    """The drug library (default preparation, dose units, titration bands) and the SBC ampule."""
    return {
        "rate_range_ml_hr": [INFUSION_CONSTANTS.RATE_MIN_ML_HR, INFUSION_CONSTANTS.RATE_MAX_ML_HR],
        "drop_factors": [f.value for f in DropFactor],
        "drugs": {
            drug.value: {
                "name": props.name,
                "mass_unit": props.mass_unit.label,
                "dose_units": [u.value for u in props.dose_units],
                "default_solution": {
                    "drug_amount": props.default_amount,
                    "drug_volume_ml": props.default_drug_volume_ml,
                    "diluent_volume_ml": props.default_diluent_volume_ml,
                    "diluent": props.diluent_name,
                },
                "bands": [
                    {"name": b.name, "unit": b.unit.value, "low": b.low, "high": b.high}
                    for b in props.bands
                ],
            }
            for drug, props in DRUG_LIBRARY.SPECS.items()
        },
        "bicarbonate": {
            "concentration_mmol_l": SBC_CONSTANTS.CONCENTRATION_MMOL_L,
            "ampule_size_ml": SBC_CONSTANTS.AMPULE_SIZE_ML,
            "mmol_per_ampule": SBC_CONSTANTS.MMOL_PER_AMPULE,
            "d5_bag_volume_ml": SBC_CONSTANTS.D5_BAG_VOLUME_ML,
        },
    }

@app.post("/infusion/{drug}/rate", response_model=InfusionResponse)
def rate_to_dose(drug: str, request: RateRequest):
    """Pump rate (mL/hr) -> every dose form the drug is titrated in."""
    return _run_infusion(drug, request.model_dump())

@app.post("/infusion/{drug}/dose", response_model=InfusionResponse)
def dose_to_rate(drug: str, request: DoseRequest):
    """Desired dose -> pump rate (mL/hr), plus the other dose forms at that rate."""
    payload = request.model_dump()
    payload['dose_unit'] = request.dose_unit.value
    return _run_infusion(drug, payload)

@app.post("/bicarbonate/plan", response_model=BicarbonateResponse)
def bicarbonate_plan(request: BicarbonateRequest):
    """
    Sodium bicarbonate deficit and the three two-phase administration options.
    """
    payload = {k: v for k, v in request.model_dump().items() if v is not None}
    logger.info(f"Bicarbonate plan for Wt: {payload.get('weight_kg')}kg, "
                f"HCO3 {payload.get('current_hco3')} -> {payload.get('target_hco3')}")

    try:
        result = _unwrap(BicarbonateProtocol.create_plan(payload), "Bicarbonate")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Internal Protocol Failure: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Bicarbonate Protocol Error")

    return {**result.plan.as_display(), "alerts": result.alerts}
