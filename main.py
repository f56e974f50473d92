"""
main.py — Master Entry Point
=============================
Runs the grid solver from the command line.

Usage:
    python main.py                                  # Headless run (default)
    python main.py --mode live                      # Live density viewer
    python main.py --mode benchmark --N 64          # Per-phase timing breakdown
    python main.py --collider sphere --viscosity 0.001
    python main.py --fixed-substeps 5 --log-level DEBUG
"""

import argparse
import logging

import numpy as np

logger = logging.getLogger("main")


def build_solver(N: int = 64, spacing: float = None, viscosity: float = 0.0,
                 gravity: tuple = (0.0, -9.8), fixed_substeps: int = 0,
                 collider: str = "none"):
    """
    Build a 2D solver over the box [-1, 1]² (unless `spacing` overrides it).

    Args:
        fixed_substeps : 0 → CFL-adaptive sub-stepping, k > 0 → k fixed sub-steps
        collider       : "none", "sphere" or "box"
    """
    from hybridfluid import Box, GridSolver, RigidBodyCollider, Sphere

    h = 2.0 / N if spacing is None else spacing
    origin = (-1.0, -1.0) if spacing is None else (0.0, 0.0)
    solver = GridSolver(size=(N, N), grid_spacing=h, origin=origin)
    solver.set_gravity(gravity)
    solver.set_viscosity_coefficient(viscosity)

    if fixed_substeps > 0:
        solver.is_using_fixed_sub_time_steps = True
        solver.number_of_fixed_sub_time_steps = fixed_substeps

    extent = N * h
    center = np.array(origin) + 0.5 * extent
    if collider == "sphere":
        solver.set_collider(RigidBodyCollider(Sphere(center, 0.15 * extent)))
    elif collider == "box":
        half = 0.1 * extent
        solver.set_collider(RigidBodyCollider(Box(center - half, center + half)))
    return solver


def add_plume(solver, rate: float = 1.0, speed: float = 2.0):
    """Smoke source near the bottom centre, pushing upward."""
    N = solver.size[0]
    solver.add_source((N // 2, 3), density=rate, velocity=(0.0, speed), radius=max(1, N // 32))


def run_live(**kwargs):
    """Live density viewer."""
    from visualizer import DensityViewer

    solver = build_solver(**kwargs)
    print(f"Starting live simulation (N={solver.size[0]})...")
    print("Close the window to exit.\n")

    viz = DensityViewer(solver, on_frame=add_plume)
    viz.run(fps=30)


def run_headless(frames: int = 100, **kwargs):
    """Run simulation without display — prints stats every 10 frames."""
    solver = build_solver(**kwargs)
    N = solver.size[0]

    print(f"\nHeadless simulation | N={N} | {frames} frames")
    print(f"{'─'*60}")

    for f in range(frames):
        add_plume(solver)
        solver.advance_frame(f)
        metrics = solver.last_step_metrics

        if f % 10 == 0:
            print(f"  Frame {f:03d} | {metrics['total_ms']:6.1f}ms/sub-step | "
                  f"div_max={metrics['divergence_max']:.5f} | "
                  f"density={metrics['density_total']:.2f}")

    times = [m["total_ms"] for m in solver.perf_log]
    print(f"\n{'─'*60}")
    print(f"  Sub-steps: {len(times)} over {frames} frames")
    print(f"  Average:   {np.mean(times):.1f}ms/sub-step")
    print(f"  Min:       {np.min(times):.1f}ms")
    print(f"  Max:       {np.max(times):.1f}ms")
    solver.print_status()


def run_benchmark(frames: int = 50, **kwargs):
    """
    Detailed performance breakdown.
    Shows how long each phase of a sub-step takes.
    """
    solver = build_solver(**kwargs)
    N = solver.size[0]

    print(f"\n{'='*60}")
    print(f"  GRID SOLVER BENCHMARK | N={N} | {frames} frames")
    print(f"{'='*60}")

    # Warm up
    for f in range(5):
        add_plume(solver)
        solver.advance_frame(f)
    solver.perf_log.clear()

    for f in range(5, 5 + frames):
        add_plume(solver)
        solver.advance_frame(f)
    logs = list(solver.perf_log)

    keys = ["source_ms", "advect_density_ms", "forces_ms", "diffuse_velocity_ms",
            "project_ms", "advect_velocity_ms", "total_ms"]

    print(f"\n{'Phase':<22} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<20} {np.mean(vals):>7.2f}ms {np.min(vals):>7.2f}ms {np.max(vals):>7.2f}ms")

    iters = [m["pressure_iterations"] for m in logs]
    total = sum(m["total_ms"] for m in logs)
    print(f"\n{'─'*50}")
    print(f"  Sub-steps/frame   : {len(logs) / frames:.2f}")
    print(f"  Pressure sweeps   : mean {np.mean(iters):.0f}, max {np.max(iters)}")
    print(f"  Frames/s (physics): {1000 * frames / total:.1f}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="2D grid fluid simulation")
    parser.add_argument(
        "--mode", choices=["live", "headless", "benchmark"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--N",         type=int,   default=64,  help="Grid resolution (default: 64)")
    parser.add_argument("--frames",    type=int,   default=100, help="Number of frames")
    parser.add_argument("--spacing",   type=float, default=None,
                        help="Cell size (default: fit the box [-1, 1]²)")
    parser.add_argument("--viscosity", type=float, default=0.0, help="Kinematic viscosity")
    parser.add_argument("--gravity",   type=float, nargs=2, default=(0.0, -9.8),
                        metavar=("GX", "GY"), help="Gravity vector")
    parser.add_argument("--fixed-substeps", type=int, default=0,
                        help="Fixed sub-steps per frame (0 = CFL-adaptive)")
    parser.add_argument("--collider",  choices=["none", "sphere", "box"], default="none",
                        help="Static obstacle in the middle of the box")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    config = dict(N=args.N, spacing=args.spacing, viscosity=args.viscosity,
                  gravity=tuple(args.gravity), fixed_substeps=args.fixed_substeps,
                  collider=args.collider)
    logger.info("Running %s mode with %s", args.mode, config)

    if args.mode == "live":
        run_live(**config)
    elif args.mode == "headless":
        run_headless(frames=args.frames, **config)
    elif args.mode == "benchmark":
        run_benchmark(frames=args.frames, **config)


if __name__ == "__main__":
    main()
