#!/usr/bin/env python3
"""Run the Veneer quality gates in order, stopping at the first failure.

Usage:
    python scripts/run_gates.py              # every gate
    python scripts/run_gates.py lint test    # selected gates, in the given order
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent

GATES: dict[str, list[str]] = {
    "format": ["ruff", "format", "--check", "src", "tests"],
    "lint": ["ruff", "check", "src", "tests"],
    "typecheck": [sys.executable, "-m", "mypy", "src/veneer"],
    "test": [sys.executable, "-m", "pytest", "-q"],
}


def run_gate(name: str) -> None:
    """Run one gate. Raises CalledProcessError on a non-zero exit."""
    cmd = GATES[name]
    print(f"\n== {name}: {' '.join(cmd)}")
    subprocess.run(cmd, cwd=REPO_ROOT, check=True)
    print(f"== {name}: passed")


def main(argv: list[str]) -> int:
    selected = [name.lower() for name in argv] or list(GATES)
    unknown = [name for name in selected if name not in GATES]
    if unknown:
        print(f"Unknown gate(s): {', '.join(unknown)}")
        print(f"Available gates: {', '.join(GATES)}")
        return 2

    try:
        for name in selected:
            run_gate(name)
    except subprocess.CalledProcessError as e:
        print(f"\nGate failed with exit code {e.returncode}; stopping.")
        return e.returncode

    print("\nAll gates passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
