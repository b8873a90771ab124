"""perpquant.cli

Command line interface entry point for perpquant.

Design constraints:
- argparse-based.
- Lazy imports: do not import numpy/pydantic at parse time.
- Every command returns an exit code; errors go to stderr with code 2.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path

EPILOG = "Fade the move. Respect the carry."


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def _add_option_args(p: argparse.ArgumentParser, *, with_sigma: bool = True) -> None:
    p.add_argument("--spot", "-S", type=float, required=True)
    p.add_argument("--strike", "-K", type=float, required=True)
    p.add_argument("--years", "-T", type=float, required=True, help="Time to expiry in years.")
    if with_sigma:
        p.add_argument("--sigma", type=float, required=True, help="Annualized volatility (0.2 = 20%%).")
    p.add_argument("--rate", "-r", type=float, default=0.0)
    p.add_argument("--yield", "-q", dest="q", type=float, default=0.0)
    p.add_argument("--right", choices=["call", "put"], default="call")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="perpquant",
        description="Option math and a sigma-move perp backtester.",
        epilog=EPILOG,
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )

    sub = parser.add_subparsers(dest="command")

    p_price = sub.add_parser("price", help="Black-Scholes-Merton price")
    _add_option_args(p_price)

    p_greeks = sub.add_parser("greeks", help="Price plus delta/gamma/vega/theta/rho")
    _add_option_args(p_greeks)

    p_iv = sub.add_parser("iv", help="Implied volatility from an option price")
    _add_option_args(p_iv, with_sigma=False)
    p_iv.add_argument("--price", type=float, required=True)

    p_rv = sub.add_parser("rv", help="Realized volatility of a candle CSV")
    p_rv.add_argument("--candles", type=Path, required=True)
    p_rv.add_argument("--interval", default="1h", help="Candle interval (1m, 5m, 15m, 1h, 4h, 1d).")

    p_bt = sub.add_parser("backtest", help="Run the perp backtest over CSV data")
    p_bt.add_argument("--candles", type=Path, required=True)
    p_bt.add_argument("--funding", type=Path, default=None)
    p_bt.add_argument("--interval", default="1h", help="Candle interval (1m, 5m, 15m, 1h, 4h, 1d).")
    p_bt.add_argument(
        "--preset",
        choices=["conservative", "balanced", "aggressive"],
        default=None,
        help="Config preset to apply.",
    )
    p_bt.add_argument("--strategy", choices=["contrarian", "momentum"], default=None)
    p_bt.add_argument("--enter-abs-z", type=float, default=None)
    p_bt.add_argument("--exit-abs-z", type=float, default=None)
    p_bt.add_argument("--min-crowding", type=float, default=None)
    p_bt.add_argument("--no-funding", action="store_true", help="Ignore funding accrual.")
    p_bt.add_argument("--json", action="store_true", help="Print the full result as JSON.")

    return parser


def _print_version() -> None:
    from perpquant import __version__

    print(f"perpquant v{__version__}")


def _load_config(ctx: CliContext, preset: str | None = None):
    from perpquant.core.config import Config

    cfg_path = ctx.repo_root / "config" / "default.yaml"
    if preset:
        return Config.from_preset(preset, repo_root=ctx.repo_root)
    if cfg_path.exists():
        return Config.from_yaml(cfg_path)
    return Config()


def _option_inputs(args: argparse.Namespace, sigma: float):
    from perpquant.quant.bsm import OptionInputs

    return OptionInputs(S=args.spot, K=args.strike, T=args.years, sigma=sigma, r=args.rate, q=args.q)


def _cmd_price(ctx: CliContext, args: argparse.Namespace) -> int:
    from perpquant.quant.bsm import bsm_price

    print(f"{bsm_price(_option_inputs(args, args.sigma), args.right):.6f}")
    return 0


def _cmd_greeks(ctx: CliContext, args: argparse.Namespace) -> int:
    from perpquant.quant.bsm import bsm

    res = bsm(_option_inputs(args, args.sigma), args.right)
    print(json.dumps(asdict(res), indent=2, default=str))
    return 0


def _cmd_iv(ctx: CliContext, args: argparse.Namespace) -> int:
    from perpquant.quant.bsm import implied_vol

    iv = implied_vol(S=args.spot, K=args.strike, T=args.years, r=args.rate, q=args.q, right=args.right, price=args.price)
    if iv is None:
        print("no implied vol: price outside no-arbitrage bounds", file=sys.stderr)
        return 1
    print(f"{iv:.8f}")
    return 0


def _interval_ms(interval: str) -> int:
    from perpquant.core.time import interval_to_ms

    ms = interval_to_ms(interval)
    if ms is None:
        raise ValueError(f"Unsupported interval: {interval}")
    return ms


def _cmd_rv(ctx: CliContext, args: argparse.Namespace) -> int:
    from perpquant.backtest.io import load_candles_csv
    from perpquant.quant.vol import realized_vol

    candles = load_candles_csv(args.candles)
    sigma = realized_vol([c.price for c in candles], period_seconds=_interval_ms(args.interval) / 1000.0)
    if sigma is None:
        print("not enough history for realized vol", file=sys.stderr)
        return 1
    print(f"{sigma:.8f}")
    return 0


def _cmd_backtest(ctx: CliContext, args: argparse.Namespace) -> int:
    from dataclasses import replace

    from perpquant.backtest.engine import run_backtest
    from perpquant.backtest.io import load_candles_csv, load_funding_csv
    from perpquant.backtest.types import StrategyMode
    from perpquant.core.log import configure_logging

    config = _load_config(ctx, args.preset)
    configure_logging(config.logging)

    bt_cfg = config.backtest.to_backtest_config(_interval_ms(args.interval))
    overrides: dict[str, object] = {}
    if args.strategy:
        overrides["strategy"] = StrategyMode(args.strategy)
    if args.enter_abs_z is not None:
        overrides["enter_abs_z"] = args.enter_abs_z
    if args.exit_abs_z is not None:
        overrides["exit_abs_z"] = args.exit_abs_z
    if args.min_crowding is not None:
        overrides["min_crowding"] = args.min_crowding
    if args.no_funding:
        overrides["use_funding"] = False
    bt_cfg = replace(bt_cfg, **overrides)

    candles = load_candles_csv(args.candles)
    funding = load_funding_csv(args.funding) if args.funding else []

    result = run_backtest(candles=candles, funding=funding, config=bt_cfg, weights=config.signal.to_weights())

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    s = result.summary
    print("perpquant backtest")
    print(f"- candles: {len(candles)}  funding points: {len(funding)}")
    print(f"- strategy: {bt_cfg.strategy}")
    print(f"- trades: {s.trade_count}")
    print(f"- ending equity: {s.ending_equity:.2f} ({s.total_return:+.2%})")
    if s.win_rate is not None:
        print(f"- win rate: {s.win_rate:.1%}  avg pnl: {s.avg_pnl:.2f}")
    if s.profit_factor is not None:
        print(f"- profit factor: {s.profit_factor:.2f}")
    dd_pct = f" ({s.max_drawdown_pct:.2%})" if s.max_drawdown_pct is not None else ""
    print(f"- max drawdown: {s.max_drawdown:.2f}{dd_pct}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "price": _cmd_price,
        "greeks": _cmd_greeks,
        "iv": _cmd_iv,
        "rv": _cmd_rv,
        "backtest": _cmd_backtest,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    from perpquant.core.exceptions import PerpQuantError

    try:
        return int(fn(ctx, args))
    except (PerpQuantError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
