"""
Command line entry point: `sgemm-bench [thread64] [repeat] [trace_fields] [options]`.

Positional arguments are parsed with C `atoi` and clamped; options fall
back to `SGEMM_BENCH_*` environment variables. Exit status: 0 when the run
completes (mismatches included), 1 on a fatal device/library failure, 2 on
usage errors.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Mapping, Optional

from harness.config import HarnessConfig, env_defaults
from harness.diagnostics import Diagnostic, DiagnosticEngine, closest_match, diagnostic_from_error
from harness.errors import HarnessError, NoDeviceError
from harness.geometry import SGEMM_64, SGEMM_128
from harness.trace import parse_layout
from pipeline import registry
from pipeline.run import BenchmarkSession

_VARIANT_CHOICES = {
    "64": (SGEMM_64.entry_point,),
    "128": (SGEMM_128.entry_point,),
    "all": (SGEMM_64.entry_point, SGEMM_128.entry_point),
}


def _log(msg: str) -> None:
    print(str(msg), file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="sgemm-bench", description="Benchmark and verify a hand-written SGEMM kernel.")
    ap.add_argument("thread64", nargs="?", default=None, help="N / 64, clamped to [1, 80] (default 80)")
    ap.add_argument("repeat", nargs="?", default=None, help="timed launches, clamped to [1, 1000] (default 1)")
    ap.add_argument("trace_fields", nargs="?", default=None, help="trace words per thread, [1, 100] (default off)")
    ap.add_argument("--device", default=None, help=f"one of {', '.join(registry.available())} (env SGEMM_BENCH_DEVICE)")
    ap.add_argument("--artifact", default=None, help="kernel artifact (cubin path, or host kernel module / .py file)")
    ap.add_argument("--variant", choices=sorted(_VARIANT_CHOICES), default="128")
    ap.add_argument("--data-path", default=None, help="mismatch grid path (default data.txt)")
    ap.add_argument("--seed", type=int, default=None, help="input seed (default: current time)")
    ap.add_argument("--bench-reference", action="store_true", help="also time the reference SGEMM")
    ap.add_argument("--trace-layout", default=None, help='trace field names/kinds, e.g. "t0,end,c:f32"')
    ap.add_argument("--atol", type=float, default=None)
    ap.add_argument("--rtol", type=float, default=None)
    ap.add_argument("--json-out", default=None, help="write a JSON summary to this path")
    ap.add_argument("--verbose", action="store_true")
    return ap


def config_from_args(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> HarnessConfig:
    options = env_defaults(environ)
    cli = {
        "device": args.device,
        "artifact": args.artifact,
        "data_path": args.data_path,
        "seed": args.seed,
        "trace_layout": args.trace_layout,
        "atol": args.atol,
        "rtol": args.rtol,
        "json_out": args.json_out,
    }
    options.update({k: v for k, v in cli.items() if v is not None})
    options["variants"] = _VARIANT_CHOICES[str(args.variant)]
    options["bench_reference"] = bool(args.bench_reference)
    options["verbose"] = bool(args.verbose)
    return HarnessConfig.from_args(args.thread64, args.repeat, args.trace_fields, **options)


def _print_diagnostic(diag: Diagnostic, *, bare: bool = False) -> None:
    first, *rest = DiagnosticEngine().format_rich(diag).split("\n")
    # Failure line on stdout next to the results; details on stderr.
    print(diag.message if bare else first, flush=True)
    for line in rest:
        _log(line)


def main(argv: Optional[List[str]] = None, *, environ: Optional[Mapping[str, str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    env = os.environ if environ is None else environ
    cfg = config_from_args(args, env)

    if cfg.device not in registry.available():
        hint = closest_match(cfg.device, registry.available())
        ap.error(f"unknown device {cfg.device!r}" + (f" (did you mean {hint[0]!r}?)" if hint else ""))
    if cfg.trace_layout:
        try:
            parse_layout(cfg.trace_layout)
        except ValueError as e:
            ap.error(str(e))

    session = BenchmarkSession(cfg, environ=env)
    try:
        session.run()
    except HarnessError as e:
        _print_diagnostic(diagnostic_from_error(e, released=session.released), bare=isinstance(e, NoDeviceError))
        return 1
    return 0


__all__ = ["build_parser", "config_from_args", "main"]
