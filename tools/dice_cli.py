#!/usr/bin/env python3
"""
DICEFAIR — Dice Audit CLI

Usage:
    python -m tools.dice_cli verify --server-seed <hex> --client-seed abc --nonce 3 --number 42
    python -m tools.dice_cli verify ... --commitment <sha256>
    python -m tools.dice_cli table --targets 50 70 90 99
    python -m tools.dice_cli simulate --rounds 10000 --targets 50 70 90
    python -m tools.dice_cli simulate --engine model --rounds 500000
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import DiceConfig
from sim_engine.rmg import get_game_engine
from sim_engine.rmg import dice
from tools.provably_fair import verification_data
from tools.rtp_simulation import RtpSimulator

console = Console()


def cmd_verify(args) -> int:
    data = verification_data(args.server_seed, args.client_seed, args.nonce,
                             args.number, commitment=args.commitment or "")
    ok = data["number_matches"] and data.get("commitment_matches", True)

    lines = [
        f"Combined hash: [dim]{data['combined_hash'][:32]}…[/dim]",
        f"Computed number: [bold]{data['computed_number']}[/bold]",
        f"Claimed number: {data['claimed_number']}",
        f"Number matches: {'✅' if data['number_matches'] else '❌'}",
    ]
    if "commitment_matches" in data:
        lines.append(f"Commitment matches: {'✅' if data['commitment_matches'] else '❌'}")
    console.print(Panel("\n".join(lines), title="Round Verification",
                        border_style="green" if ok else "red"))
    return 0 if ok else 1


def cmd_table(args) -> int:
    table = Table(title="Dice Multipliers")
    table.add_column("Target", justify="right", style="cyan")
    table.add_column("Win Chance", justify="right")
    table.add_column("House Edge", justify="right")
    table.add_column("Multiplier", justify="right", style="bold")
    table.add_column("RTP", justify="right")
    for row in dice.multiplier_table(args.targets):
        table.add_row(
            str(row["target"]),
            f"{row['win_chance_pct']:.0f}%",
            f"{row['edge'] * 100:.1f}%",
            f"{row['multiplier']:.2f}x",
            f"{row['rtp_pct']:.1f}%",
        )
    console.print(table)
    return 0


def cmd_simulate(args) -> int:
    if args.engine == "model":
        engine = get_game_engine("dice")
        table = Table(title=f"Model Simulation ({args.rounds:,} rounds, seed {args.seed})")
        for col in ("Target", "Measured RTP", "Theoretical RTP", "Hit Rate", "Edge 95% CI"):
            table.add_column(col, justify="right")
        for target in args.targets:
            res = engine.simulate(engine.generate_config(target=target),
                                  rounds=args.rounds, seed=args.seed)
            lo, hi = res.confidence_95
            table.add_row(
                str(target),
                f"{res.rtp * 100:.2f}%",
                f"{dice.theoretical_rtp(target) * 100:.2f}%",
                f"{res.hit_rate * 100:.2f}%",
                f"{lo * 100:.2f}% to {hi * 100:.2f}%",
            )
        console.print(table)
        return 0

    sim = RtpSimulator(tolerance_pct=args.tolerance)
    report = sim.run(targets=args.targets, n_rounds=args.rounds)
    if args.json:
        console.print_json(report.to_json())
        return 0 if report.overall_pass else 1

    table = Table(title=f"RTP Simulation ({args.rounds:,} rounds per target)")
    for col in ("Target", "Actual RTP", "Theoretical RTP", "Win Rate",
                "Max Win Streak", "Max Loss Streak", "Check"):
        table.add_column(col, justify="right")
    for r in report.results:
        table.add_row(
            str(r.target),
            f"{r.rtp_pct:.2f}%",
            f"{r.theoretical_rtp_pct:.2f}%",
            f"{r.win_rate_pct:.2f}%",
            str(r.streaks["max_win_streak"]),
            str(r.streaks["max_loss_streak"]),
            "[green]PASS[/green]" if r.rtp_pass else "[red]FAIL[/red]",
        )
    console.print(table)
    return 0 if report.overall_pass else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provably fair dice audit tools")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("verify", help="Recompute a round from revealed seeds")
    p.add_argument("--server-seed", required=True)
    p.add_argument("--client-seed", required=True)
    p.add_argument("--nonce", type=int, required=True)
    p.add_argument("--number", type=int, required=True, help="Number the operator reported")
    p.add_argument("--commitment", help="Published SHA-256 of the server seed")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("table", help="Print edge and multiplier per target")
    p.add_argument("--targets", type=int, nargs="+", default=None)
    p.set_defaults(func=cmd_table)

    p = sub.add_parser("simulate", help="Monte Carlo RTP check")
    p.add_argument("--targets", type=int, nargs="+", default=[50, 70, 90])
    p.add_argument("--rounds", type=int, default=10_000)
    p.add_argument("--engine", choices=["hash", "model"], default="hash",
                   help="hash: real SHA-512 rounds, model: seeded PRNG")
    p.add_argument("--seed", type=int, default=42, help="PRNG seed for --engine model")
    p.add_argument("--tolerance", type=float, default=DiceConfig.RTP_TOLERANCE_PCT)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_simulate)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
