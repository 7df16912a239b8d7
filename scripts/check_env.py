"""
Environment validation script.

Reports which parts of the stack are importable and whether a device that can
run the SGEMM artifact (compute capability >= 5.0) is present.
"""

from __future__ import annotations

import argparse
import importlib
import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from harness.errors import HarnessError  # noqa: E402
from pipeline import registry  # noqa: E402
from pipeline.run import select_device  # noqa: E402


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str = ""
    hint: str = ""


def _check_python() -> CheckResult:
    v = sys.version_info
    ok = (v.major, v.minor) >= (3, 10)
    return CheckResult("python", ok, detail=f"{v.major}.{v.minor}.{v.micro}", hint="need Python>=3.10" if not ok else "")


def _check_import(mod: str, *, required: bool, hint: str) -> CheckResult:
    try:
        m = importlib.import_module(mod)
        ver = getattr(m, "__version__", None)
        detail = f"ok{(' ' + str(ver)) if ver else ''}"
        return CheckResult(mod, True, detail=detail)
    except Exception as e:
        return CheckResult(mod, False, detail=f"{type(e).__name__}: {e}", hint=(hint if required else f"optional: {hint}"))


def _check_device(name: str, *, required: bool) -> CheckResult:
    label = f"device:{name}"
    try:
        dev = registry.get(name)()
        info = select_device(dev.enumerate())
    except HarnessError as e:
        return CheckResult(label, False, detail=str(e), hint="" if required else "optional: use --device host")
    except Exception as e:
        hint = "pip install -e '.[gpu]'"
        return CheckResult(label, False, detail=f"{type(e).__name__}: {e}", hint=(hint if required else f"optional: {hint}"))
    return CheckResult(label, True, detail=info.describe())


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--strict", action="store_true", help="treat the GPU stack as required (fail if missing)")
    args = ap.parse_args()

    print(f"platform: {platform.platform()}")
    print(f"cwd: {os.getcwd()}")

    opt = bool(args.strict)

    checks: list[CheckResult] = []
    checks.append(_check_python())
    checks.append(_check_import("numpy", required=True, hint="pip install -e ."))
    checks.append(_check_import("pytest", required=True, hint="pip install -e '.[test]'"))

    # GPU stack.
    checks.append(_check_import("torch", required=opt, hint="install torch (CUDA build) or pip install -e '.[gpu]'"))
    checks.append(_check_import("cupy", required=opt, hint="pip install -e '.[gpu]'"))
    checks.append(_check_device("host", required=True))
    checks.append(_check_device("cuda", required=opt))

    ok_all = True
    for c in checks:
        status = "OK" if c.ok else "FAIL"
        print(f"[{status}] {c.name}: {c.detail}")
        if (not c.ok) and c.hint:
            print(f"  hint: {c.hint}")
        if not c.hint.startswith("optional"):
            ok_all = ok_all and bool(c.ok)

    raise SystemExit(0 if ok_all else 1)


if __name__ == "__main__":
    main()
