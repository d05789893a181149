#!/usr/bin/env python3
"""
Buffon's needle demo.

Drives a session headlessly with a manual frame loop at 60 fps, then draws the
needle field and the convergence of the estimate, and optionally writes the
history CSV, the results JSON and a resumable snapshot.

Usage:
    python demo.py --seconds 20 --rate 2000 --length 1.0 --spacing 2.0
    python demo.py --resume snapshot.json --seconds 5
"""

from __future__ import annotations

import argparse
import json
import math
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from buffon import (
    BuffonError,
    ManualFrameLoop,
    NeedleSimulation,
    SimulationConfig,
    SimulationParameters,
    rows_to_csv,
)
from buffon.snapshot import dumps, loads

FRAME_MS = 1000.0 / 60.0


def run_session(sim: NeedleSimulation, loop: ManualFrameLoop, seconds: float, start_ms: float = 0.0) -> float:
    """Serve frames for ``seconds`` of simulated time; returns the final timestamp."""
    now = start_ms
    sim.start(now_ms=now)
    frames = int(seconds * 1000.0 / FRAME_MS)
    step = max(1, frames // 10)
    for i in range(1, frames + 1):
        now = start_ms + i * FRAME_MS
        loop.run_frame(now)
        if i % step == 0 or i == frames:
            reading = sim.current_estimate()
            shown = "-" if reading.value is None else f"{reading.value:.6f}"
            print(f"Progress: {i}/{frames} frames, {sim.state.total_trials} throws, pi ~ {shown}")
    sim.pause()
    return now


def draw_needle_field(ax, sim: NeedleSimulation, n_lines: int = 6):
    """Draw recent drops on a ruled field. Crossing needles in red."""
    p = sim.params
    height = n_lines * p.line_spacing
    width = height
    for k in range(n_lines + 1):
        ax.axhline(k * p.line_spacing, color="black", linewidth=0.8)

    cols = sim.ring.as_arrays()
    if len(cols["x"]):
        # Place each centre on a random band, at the recorded distance from its nearest line.
        band = np.floor(cols["y"] * n_lines)
        above = (cols["x"] * 1000).astype(int) % 2 == 0
        cy = band * p.line_spacing + np.where(above, cols["offset"], p.line_spacing - cols["offset"])
        cx = cols["x"] * width
        dx = 0.5 * p.needle_length * np.cos(cols["angle"])
        dy = 0.5 * p.needle_length * np.sin(cols["angle"])
        dy = np.where(above, -dy, dy)
        for crossed, color in ((False, "steelblue"), (True, "crimson")):
            m = cols["crosses"] == crossed
            ax.plot(
                np.vstack([cx[m] - dx[m], cx[m] + dx[m]]),
                np.vstack([cy[m] - dy[m], cy[m] + dy[m]]),
                color=color,
                linewidth=0.7,
                alpha=0.8,
            )
    ax.set_xlim(0, width)
    ax.set_ylim(-p.line_spacing * 0.1, height + p.line_spacing * 0.1)
    ax.set_aspect("equal")
    ax.set_title(f"Last {len(sim.ring)} needles (L={p.needle_length:g}, D={p.line_spacing:g})")
    ax.set_xticks([])
    ax.set_yticks([])


def draw_convergence(ax, sim: NeedleSimulation):
    trials = sim.history.trial_indices()
    estimates = sim.history.estimates()
    ax.axhline(math.pi, color="red", linestyle="-", linewidth=1.5, label=f"True π = {math.pi:.6f}")
    if len(trials):
        ax.plot(trials, estimates, color="navy", linewidth=1.2, label="Running estimate")
        ax.set_xscale("log")
    ax.set_xlabel("Throws")
    ax.set_ylabel("Estimated π")
    ax.set_title("Convergence")
    ax.grid(True, alpha=0.3)
    ax.legend()


def main():
    """Main entry point for the needle demo."""
    parser = argparse.ArgumentParser(
        description="Buffon's needle: estimate pi by dropping needles on ruled paper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--length", type=float, default=1.0, help="Needle length L (default: 1.0)")
    parser.add_argument("--spacing", type=float, default=2.0, help="Line spacing D (default: 2.0)")
    parser.add_argument("--rate", type=float, default=1000.0, help="Throws per second (default: 1000)")
    parser.add_argument("--seconds", type=float, default=10.0, help="Simulated run time (default: 10)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for reproducibility (default: 42)")
    parser.add_argument("--resume", type=Path, help="Snapshot file to resume from")
    parser.add_argument("--out", type=Path, help="Directory for CSV, JSON and snapshot output")
    parser.add_argument("--no-show", action="store_true", help="Do not open plot windows")
    args = parser.parse_args()

    loop = ManualFrameLoop()
    try:
        config = SimulationConfig(
            params=SimulationParameters(args.length, args.spacing),
            rate=args.rate,
            seed=args.seed,
        )
        sim = NeedleSimulation(config, frames=loop)
        if args.resume is not None:
            sim.import_snapshot(loads(args.resume.read_text(encoding="utf-8")))
            print(f"Resumed from {args.resume}: {sim.state.total_trials} throws")
    except (BuffonError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    run_session(sim, loop, args.seconds)

    reading = sim.current_estimate()
    print("\n" + "=" * 60)
    print(f"Throws:     {sim.state.total_trials}")
    print(f"Crossings:  {sim.state.total_crossings}")
    if reading.value is None:
        print("Estimate:   - (no crossings yet)")
    else:
        print(f"Estimate:   {reading.value:.8f}")
        print(f"Error:      {reading.error_pct:.4f}%")
    print("=" * 60)

    if args.out is not None:
        args.out.mkdir(parents=True, exist_ok=True)
        try:
            (args.out / "history.csv").write_text(rows_to_csv(sim.export_history_as_rows()), encoding="utf-8")
        except BuffonError as e:
            print(f"Skipping CSV: {e}")
        (args.out / "results.json").write_text(json.dumps(sim.export_results(), indent=2), encoding="utf-8")
        (args.out / "snapshot.json").write_text(dumps(sim.export_snapshot(), indent=2), encoding="utf-8")
        print(f"Wrote history.csv, results.json and snapshot.json to {args.out}")

    plt.style.use("default")
    plt.rcParams["figure.dpi"] = 100
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(15, 7))
    fig.suptitle("Buffon's Needle", fontsize=16, fontweight="bold")
    draw_needle_field(ax1, sim)
    draw_convergence(ax2, sim)
    fig.tight_layout()

    if args.out is not None:
        fig.savefig(args.out / "buffon.png", bbox_inches="tight", dpi=300)
    if not args.no_show:
        plt.show()
    return 0


if __name__ == "__main__":
    sys.exit(main())
