#!/usr/bin/env python3
"""
Lint and format the lecture_qa sources with ruff, isort and black.

    python lint.py            # auto-fix
    python lint.py --check    # report only, exit 1 on problems
"""

import subprocess
import sys
from pathlib import Path

TARGETS = ["lecture_qa", "tests", "main.py", "lint.py"]

CHECK_STEPS = [
    (["ruff", "check"], "Ruff linting"),
    (["black", "--check"], "Black formatting check"),
    (["isort", "--check-only"], "isort import sorting check"),
]

FIX_STEPS = [
    (["ruff", "check", "--fix"], "Ruff auto-fix"),
    (["isort"], "isort import sorting"),
    (["black"], "Black code formatting"),
]


def run_step(command: list[str], description: str) -> bool:
    """Run one tool over all targets; True when it exits cleanly."""
    print(f"\n{'=' * 80}\nRunning: {description}\n{'=' * 80}\n")
    result = subprocess.run(command + TARGETS, cwd=Path(__file__).parent)
    print(f"\n{'✅' if result.returncode == 0 else '❌'} {description}\n")
    return result.returncode == 0


def main() -> int:
    check_only = "--check" in sys.argv
    steps = CHECK_STEPS if check_only else FIX_STEPS

    results = [(description, run_step(command, description)) for command, description in steps]

    print(f"\n{'=' * 80}\nSUMMARY\n{'=' * 80}\n")
    for description, passed in results:
        print(f"{'✅ PASSED' if passed else '❌ FAILED'}: {description}")

    if all(passed for _, passed in results):
        return 0
    if check_only:
        print("\n⚠️  Some checks failed. Run 'python lint.py' (without --check) to auto-fix.\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
