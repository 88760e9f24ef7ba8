"""
Run a shared-heating market from the command line.

Builds a population from archetype counts, finds an equilibrium with the
chosen method and prints the tenants' temperatures and the manager's
cost. With --policy learned the Monte-Carlo curve search runs first.
"""

import argparse
import logging
import time

from agents import Archetype
from billing import SubsidyPolicy
from config import CONFIG
from equilibrium import SolverMethod
from errors import ConvergenceExhausted, InvalidConfiguration
from market import HousingMarket
from optimizer import SubsidyCurveOptimizer, format_curve_rows


def create_market(
    eco: int,
    traveller: int,
    comfort: int,
    erratic: int = 0,
    strategy_count: int = CONFIG.defaults.strategy_count,
    external_temperature: float = CONFIG.defaults.external_temperature,
    method: SolverMethod = SolverMethod.BEST_RESPONSE,
    seed=None,
) -> HousingMarket:
    """
    Create a market with the given population composition.

    Args:
        eco, traveller, comfort, erratic: tenants per archetype
        strategy_count: heating levels per tenant
        external_temperature: outside temperature
        method: equilibrium search
        seed: seed of the shared random source

    Returns:
        HousingMarket instance
    """
    print(f"Creating market with {eco} eco, {traveller} traveller, {comfort} comfort, {erratic} erratic tenants...")
    return HousingMarket.from_population(
        {
            Archetype.ECO: eco,
            Archetype.TRAVELLER: traveller,
            Archetype.COMFORT: comfort,
            Archetype.ERRATIC: erratic,
        },
        seed=seed,
        strategy_count=strategy_count,
        external_temperature=external_temperature,
        method=method,
    )


def print_outcome(market: HousingMarket) -> None:
    metrics = market.get_market_metrics()
    result = metrics.get("result", {})

    print("=" * 80)
    print("EQUILIBRIUM")
    print("=" * 80)
    print(f"  Method:                       {metrics['method']:>18}")
    print(f"  Policy:                       {metrics['policy']:>18}")
    print(f"  Rounds:                       {result.get('rounds', 0):>18,}")
    print(f"  Attempts:                     {result.get('attempts', 1):>18,}")
    print()
    print("TENANTS")
    print("-" * 80)
    for agent, temperature in zip(market.agents, metrics["chosen_temperatures"]):
        print(f"  #{agent.agent_id:3d} {agent.archetype.value:10s} ideal {agent.ideal_temperature:6.2f} "
              f"-> {temperature:6.2f} (subsidy {market.billing.subsidy(temperature):.3f})")
    print()
    print(f"  Total consumption:            {metrics['total_consumption']:>18.3f}")
    print(f"  Individual bill:              {metrics['individual_bill']:>18.3f}")
    print(f"  Owner cost:                   {metrics['owner_cost']:>18.3f}")
    print()


def main(args) -> int:
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    start = time.time()

    try:
        market = create_market(
            eco=args.eco,
            traveller=args.traveller,
            comfort=args.comfort,
            erratic=args.erratic,
            strategy_count=args.strategies,
            external_temperature=args.external,
            method=SolverMethod(args.method),
            seed=args.seed,
        )
        policy = SubsidyPolicy(args.policy)
        if policy is SubsidyPolicy.LEARNED:
            optimizer = SubsidyCurveOptimizer(market)
            search = optimizer.search(args.samples, args.trials)
            print("=" * 80)
            print("SUBSIDY CURVE SEARCH")
            print("=" * 80)
            print(f"  Baseline cost (no subsidy):   {search.baseline_cost:>18.3f}")
            print(f"  Best cost:                    {search.best_cost:>18.3f}")
            print(f"  Best max value:               {search.best_max_value:>18.3f}")
            print(f"  Best seed:                    {search.best_seed:>18}")
            print(f"  Trials run / skipped:         {search.trials_run:>10} / {search.trials_skipped}")
            print()
        else:
            market.policy = policy
            market.analyse()
    except InvalidConfiguration as exc:
        print(f"Invalid configuration: {exc}")
        return 2
    except ConvergenceExhausted as exc:
        print(f"No equilibrium found: {exc}")
        return 1

    print_outcome(market)

    if args.print_curve and market.reduction_curve is not None:
        print("=" * 80)
        print("REDUCTION CURVE (temperature reduction)")
        print("=" * 80)
        for row in format_curve_rows(market.reduction_curve, market.config.thermal):
            print(row)
        print()

    print(f"Total time: {time.time() - start:.2f} seconds")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a shared-heating market.")
    parser.add_argument("--eco", type=int, default=10, help="Number of eco tenants")
    parser.add_argument("--traveller", type=int, default=10, help="Number of traveller tenants")
    parser.add_argument("--comfort", type=int, default=10, help="Number of comfort tenants")
    parser.add_argument("--erratic", type=int, default=0, help="Number of tenants with random preferences")
    parser.add_argument("--strategies", type=int, default=CONFIG.defaults.strategy_count,
                        help="Heating levels per tenant")
    parser.add_argument("--external", type=float, default=CONFIG.defaults.external_temperature,
                        help="Outside temperature")
    parser.add_argument("--policy", choices=[p.value for p in SubsidyPolicy], default=SubsidyPolicy.NONE.value)
    parser.add_argument("--method", choices=[m.value for m in SolverMethod],
                        default=SolverMethod.BEST_RESPONSE.value)
    parser.add_argument("--seed", type=int, default=None, help="Seed of the random source")
    parser.add_argument("--samples", type=int, default=CONFIG.optimizer.max_value_samples,
                        help="Curve amplitudes tried by the learned policy")
    parser.add_argument("--trials", type=int, default=CONFIG.optimizer.trials_per_sample,
                        help="Random curves per amplitude")
    parser.add_argument("--print-curve", action="store_true", help="Print the reduction curve rows")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    raise SystemExit(main(parser.parse_args()))
