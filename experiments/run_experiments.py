"""
experiments/run_experiments.py

Experiment harness that loads the baseline config, applies scenario overrides,
runs multiple replications, and reports KPIs with confidence intervals.
The script is intentionally lightweight so we can tweak scenarios or plug in
other analysis pipelines as needed.
"""

from __future__ import annotations
import argparse, copy, logging, math, os
from typing import Dict, List, Callable, Optional
from statistics import mean, stdev

from scipy.stats import t as student_t

from paxsim.config import ROOT, load_cfg, apply_overrides
from paxsim.simulation import run_one_day
from experiments.scenarios import SCENARIOS

OUT_DIR = os.path.join(ROOT, "experiments", "output")


def mean_ci(values: List[float], confidence_level: float) -> tuple[float, float]:
    """Return (mean, half-width) using a t-distribution critical value."""
    if not values:
        return 0.0, 0.0
    mu = mean(values)
    n = len(values)
    if n < 2:
        return mu, 0.0
    level = min(max(confidence_level, 0.0), 0.999999)
    alpha = 1.0 - level
    tcrit = student_t.ppf(1 - alpha / 2.0, n - 1)
    half = tcrit * (stdev(values) / math.sqrt(n))
    return mu, half


def series(results: List[Dict], extractor: Callable[[Dict], float]) -> List[float]:
    """Collect a numeric series from each replication result."""
    return [float(extractor(res)) for res in results]


def avg_nested(results: List[Dict], key: str) -> Dict[str, float]:
    """Average nested dictionaries (e.g., avg_wait_seconds) across replications."""
    if not results:
        return {}
    totals: Dict[str, float] = {}
    for res in results:
        nested = res.get(key, {})
        for subk, val in nested.items():
            totals[subk] = totals.get(subk, 0.0) + float(val)
    return {subk: totals[subk] / len(results) for subk in totals}


def run_crn(cfg: Dict, sc_a: Dict, sc_b: Dict, replications: int, base_seed: int, confidence: float, C: float):
    """
    Run a common-random-number comparison between two scenarios, using the same
    seed per replication, and report paired differences in completed passengers.
    """
    results = []
    cfg_a = apply_overrides(cfg, sc_a["overrides"])
    cfg_b = apply_overrides(cfg, sc_b["overrides"])
    for rep in range(replications):
        seed = base_seed + rep
        cfg_a_run = copy.deepcopy(cfg_a); cfg_a_run.setdefault("sim", {})["seed"] = seed
        cfg_b_run = copy.deepcopy(cfg_b); cfg_b_run.setdefault("sim", {})["seed"] = seed
        res_a = run_one_day(cfg_a_run)
        res_b = run_one_day(cfg_b_run)
        results.append((seed, res_a.get("completed", 0), res_b.get("completed", 0)))
    diffs = [b - a for (_, a, b) in results]
    mean_diff = mean(diffs)
    sd_diff = stdev(diffs) if len(diffs) > 1 else 0.0
    level = min(max(confidence, 0.0), 0.999999)
    # Bonferroni: split the family-wise error over C comparisons
    alpha = (1.0 - level) / max(C, 1.0)
    df = max(1, len(diffs) - 1)
    tcrit = student_t.ppf(1 - alpha / 2.0, df)
    half = tcrit * (sd_diff / math.sqrt(len(diffs))) if len(diffs) > 1 else 0.0
    print(f"CRN paired comparison of boarded passengers ({sc_b['name']} - {sc_a['name']}):")
    print("  Replication | Seed | Boarded1 | Boarded2 | Difference")
    for idx, (seed, p1, p2) in enumerate(results, start=1):
        print(f"    {idx:2d}        | {seed:4d} | {p1:8d} | {p2:8d} | {p2 - p1:+d}")
    print(f"  Mean difference: {mean_diff:.2f}")
    print(f"  Std dev of differences: {sd_diff:.2f}")
    print(f"  {level*100:.1f}% CI of mean diff: {mean_diff - half:.2f} to {mean_diff + half:.2f}")


def _interp_point(points: List[Dict[str, float]], target: float) -> float:
    """Step-interpolate cumulative completions at an arbitrary time stamp."""
    total = 0.0
    for pt in points:
        if pt["time_seconds"] > target:
            break
        total = pt["completed_total"]
    return total


def aggregate_time_series(results: List[Dict], duration: float, interval: float) -> List[Dict[str, float]]:
    """
    Average per-replication completion curves on a fixed interval grid and
    return passengers boarded per interval.
    """
    if not results:
        return []
    if interval <= 0:
        interval = 60.0
    grid = [i * interval for i in range(int(math.ceil(duration / interval)) + 1)]
    aggregated: List[Dict[str, float]] = [{"time_seconds": 0.0, "completed_interval": 0.0}]
    for idx in range(1, len(grid)):
        start, end = float(grid[idx - 1]), float(grid[idx])
        vals = []
        for res in results:
            pts = res.get("time_series", [])
            vals.append(_interp_point(pts, end) - _interp_point(pts, start))
        aggregated.append({"time_seconds": end, "completed_interval": sum(vals) / len(vals)})
    return aggregated


def plot_all_scenarios(all_series: List[Dict], warmup_seconds: float) -> Optional[str]:
    """Plot boarded-per-interval curves for every scenario on one figure."""
    if not all_series:
        return None
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    plt.figure(figsize=(9, 5))
    for entry in all_series:
        pts = entry.get("series", [])
        if not pts:
            continue
        x = [pt["time_seconds"] / 60.0 for pt in pts]
        y = [pt["completed_interval"] for pt in pts]
        plt.plot(x, y, linewidth=1.5, label=entry.get("name", "scenario"))
    if warmup_seconds > 0:
        plt.axvline(warmup_seconds / 60.0, color="#f59e0b", linestyle="--", label="Warm-up cutoff")
    plt.xlabel("Time (minutes)")
    plt.ylabel("Passengers boarded per interval")
    plt.title("Throughput over time across scenarios")
    plt.grid(True, linestyle="--", alpha=0.4)
    plt.legend()
    os.makedirs(OUT_DIR, exist_ok=True)
    out_path = os.path.join(OUT_DIR, "all_scenarios_throughput.png")
    plt.tight_layout()
    plt.savefig(out_path, dpi=160)
    plt.close()
    return out_path


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Run passenger flow scenarios with replications.")
    ap.add_argument("--config", default=None, help="YAML config (default: config/baseline.yaml)")
    ap.add_argument("--replications", type=int, default=None)
    ap.add_argument("--scenario", action="append", default=None, help="run only the named scenario(s)")
    ap.add_argument("--no-plot", action="store_true")
    ap.add_argument("--log-level", default="WARNING")
    return ap.parse_args(argv)


def main(argv=None):
    """Entry point: drive all scenarios, replications, and report KPIs."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = load_cfg(args.config)
    exp_cfg = cfg.get("experiments", {})
    replications = max(1, int(args.replications or exp_cfg.get("replications", 1)))
    confidence = float(exp_cfg.get("confidence_level", 0.95))
    interval = float(exp_cfg.get("time_series_interval_seconds", 60.0))
    level_pct = confidence * 100.0
    default_seed = cfg.get("sim", {}).get("seed", 0)
    scenarios = [s for s in SCENARIOS if not args.scenario or s["name"] in args.scenario]

    all_series: List[Dict] = []
    max_warmup = 0.0
    for sc in scenarios:
        sc_base_cfg = apply_overrides(cfg, sc["overrides"])
        scenario_seed = sc_base_cfg.get("sim", {}).get("seed", default_seed)
        warmup = float(sc_base_cfg.get("sim", {}).get("warmup_seconds", 0.0))
        max_warmup = max(max_warmup, warmup)
        results = []
        for rep in range(replications):
            sc_cfg = copy.deepcopy(sc_base_cfg)
            sc_cfg.setdefault("sim", {})
            # Advance the seed per replication so replications stay iid
            sc_cfg["sim"]["seed"] = scenario_seed + rep
            results.append(run_one_day(sc_cfg))

        boarded = mean_ci(series(results, lambda r: r.get("completed", 0)), confidence)
        throughput = mean_ci(series(results, lambda r: r.get("throughput_per_minute", 0.0)), confidence)
        system_time = mean_ci(series(results, lambda r: r.get("avg_time_in_system_seconds", 0.0)), confidence)
        p90 = mean_ci(series(results, lambda r: r.get("p90_time_in_system_seconds", 0.0)), confidence)
        skipped = mean_ci(series(results, lambda r: sum(r.get("spawn_skipped", {}).values())), confidence)
        dropped = mean_ci(series(results, lambda r: sum(r.get("unroutable", {}).values())), confidence)
        waits = {k: round(v, 1) for k, v in avg_nested(results, "avg_wait_seconds").items()}
        attempts = {k: round(v, 2) for k, v in avg_nested(results, "mean_attempts_per_pass").items()}
        utilizations = {k: round(v * 100.0, 1) for k, v in avg_nested(results, "station_utilization").items()}
        duration = float(sc_base_cfg.get("sim", {}).get("duration_seconds", 0.0))
        all_series.append({"name": sc["name"], "series": aggregate_time_series(results, duration, interval)})

        print(f"Scenario: {sc['name']} (replications={replications}, {level_pct:.1f}% CI, "
              f"seeds {scenario_seed}-{scenario_seed + replications - 1})")
        print(f"  Boarded: {boarded[0]:.1f} ± {boarded[1]:.1f}")
        print(f"  Throughput: {throughput[0]:.2f} ± {throughput[1]:.2f} pax/min")
        print(f"  Avg time in system: {system_time[0]:.1f} ± {system_time[1]:.1f} s")
        print(f"  P90 time in system: {p90[0]:.1f} ± {p90[1]:.1f} s")
        print(f"  Spawns skipped (pool exhausted): {skipped[0]:.1f} ± {skipped[1]:.1f}")
        print(f"  Unroutable drops: {dropped[0]:.1f} ± {dropped[1]:.1f}")
        print(f"  Avg queue wait by stage (s): {waits}")
        print(f"  Mean attempts per pass: {attempts}")
        print(f"  Stage utilization (mean % busy): {utilizations}")
        print("-")

    # Optional CRN comparison between named scenarios using common random numbers
    crn_pairs = exp_cfg.get("crn_compare")
    if crn_pairs:
        sc_index = {s["name"]: s for s in SCENARIOS}
        comparisons = []
        for pair in crn_pairs:
            if len(pair) != 2:
                print(f"[warn] skipping CRN entry (needs 2 names): {pair}")
            elif pair[0] not in sc_index or pair[1] not in sc_index:
                print(f"[warn] CRN pair not found: {pair}")
            else:
                comparisons.append((sc_index[pair[0]], sc_index[pair[1]]))
        # every configured pair is one comparison in the Bonferroni family
        C = len(comparisons)
        for sc_a, sc_b in comparisons:
            print(f"\nCRN & Bonferroni Comparison: {sc_a['name']} vs {sc_b['name']} (replications={replications}, seeds shared)")
            run_crn(cfg, sc_a, sc_b, replications, default_seed, confidence, C)

    if not args.no_plot:
        path = plot_all_scenarios(all_series, max_warmup)
        if path:
            print(f"\nThroughput-by-time plot saved to: {path}")


if __name__ == "__main__":
    main()
