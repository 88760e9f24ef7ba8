import logging
import os
import sys

# Add current directory to path so we can import backend modules
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from typing import Dict, List, Optional
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, conint, confloat

from agents import ARCHETYPE_PROFILES, Archetype
from billing import SubsidyPolicy
from config import CONFIG
from equilibrium import SolverMethod
from errors import ConvergenceExhausted, InvalidConfiguration
from market import HousingMarket
from optimizer import SubsidyCurveOptimizer, format_curve_rows

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shared Heating Market", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Request/Response Models ----------

class PopulationInput(BaseModel):
    eco: conint(ge=0) = 0
    traveller: conint(ge=0) = 0
    comfort: conint(ge=0) = 0
    erratic: conint(ge=0) = 0

class CustomTenantInput(BaseModel):
    ideal_temperature: float
    weight_heating: confloat(ge=0)
    weight_transport: confloat(ge=0)
    weight_comfort: confloat(ge=0)

class MarketRequest(BaseModel):
    population: PopulationInput
    custom_tenants: List[CustomTenantInput] = []
    strategy_count: conint(ge=2) = CONFIG.defaults.strategy_count
    external_temperature: float = CONFIG.defaults.external_temperature
    policy: SubsidyPolicy = SubsidyPolicy.NONE
    method: SolverMethod = SolverMethod.BEST_RESPONSE
    reduction_curve: Optional[List[confloat(ge=0, le=1)]] = None
    seed: Optional[int] = None

class CurveSearchRequest(MarketRequest):
    max_value_samples: conint(ge=1) = CONFIG.optimizer.max_value_samples
    trials_per_sample: conint(ge=1) = CONFIG.optimizer.trials_per_sample

class EquilibriumResponse(BaseModel):
    method: SolverMethod
    policy: SubsidyPolicy
    strategies: List[int]
    chosen_temperatures: List[float]
    owner_cost: float
    rounds: int
    attempts: int

class CurveSearchResponse(BaseModel):
    best_max_value: float
    best_seed: int
    best_cost: float
    baseline_cost: float
    curve: List[float]
    rows: List[str]
    equilibrium: EquilibriumResponse

# ---------- Helpers ----------

def _build_market(req: MarketRequest) -> HousingMarket:
    counts = {
        Archetype.ECO: req.population.eco,
        Archetype.TRAVELLER: req.population.traveller,
        Archetype.COMFORT: req.population.comfort,
        Archetype.ERRATIC: req.population.erratic,
    }
    return HousingMarket.from_population(
        counts,
        custom_agents=[t.model_dump() for t in req.custom_tenants],
        seed=req.seed,
        strategy_count=req.strategy_count,
        external_temperature=req.external_temperature,
        method=req.method,
        reduction_curve=req.reduction_curve,
    )

def _equilibrium_response(market: HousingMarket) -> EquilibriumResponse:
    result = market.last_result
    return EquilibriumResponse(
        method=result.method,
        policy=market.policy,
        strategies=result.strategies,
        chosen_temperatures=market.chosen_temperatures,
        owner_cost=market.owner_cost(),
        rounds=result.rounds,
        attempts=result.attempts,
    )

# ---------- API Endpoints ----------

@app.get("/archetypes")
def archetypes() -> Dict[str, Dict[str, float]]:
    return {
        archetype.value: {
            "ideal_temperature": ideal,
            "weight_heating": heating,
            "weight_transport": transport,
            "weight_comfort": comfort,
        }
        for archetype, (ideal, heating, transport, comfort) in ARCHETYPE_PROFILES.items()
    }

@app.post("/equilibrium", response_model=EquilibriumResponse)
def equilibrium(req: MarketRequest):
    try:
        market = _build_market(req)
        market.policy = req.policy
        market.analyse()
    except InvalidConfiguration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConvergenceExhausted as e:
        logger.warning(f"Equilibrium search failed: {e}")
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"Solved {len(market.agents)} tenants with {req.method.value}")
    return _equilibrium_response(market)

@app.post("/subsidy-curve", response_model=CurveSearchResponse)
def subsidy_curve(req: CurveSearchRequest):
    try:
        market = _build_market(req)
        search = SubsidyCurveOptimizer(market).search(req.max_value_samples, req.trials_per_sample)
    except InvalidConfiguration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConvergenceExhausted as e:
        logger.warning(f"Curve search failed: {e}")
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"Curve search: max={search.best_max_value:.3f} seed={search.best_seed} cost={search.best_cost:.4f}")
    return CurveSearchResponse(
        best_max_value=search.best_max_value,
        best_seed=search.best_seed,
        best_cost=search.best_cost,
        baseline_cost=search.baseline_cost,
        curve=search.curve.tolist(),
        rows=format_curve_rows(search.curve, market.config.thermal),
        equilibrium=_equilibrium_response(market),
    )
