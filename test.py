"""
Run the QuickLink test suite in stages: edge cases first, then everything,
then the regression tests. Stops at the first failing stage and reruns it
verbosely so the failure is visible.
"""
import subprocess
import sys
from datetime import datetime
from pathlib import Path

TEST_DIR = Path(__file__).parent / "test"

STAGES = [
    ("pedantic", ["-m", "pedantic"]),
    ("all", []),
    ("regression", ["-m", "regression_test"]),
]


def run_stage(name, args):
    cmd = [sys.executable, "-m", "pytest", "-q", str(TEST_DIR)] + args
    if subprocess.run(cmd, capture_output=True, text=True).returncode != 0:
        print(f"Stage '{name}' failed, rerunning until the first failure")
        sys.exit(subprocess.run(cmd + ["--maxfail=1"]).returncode)


if __name__ == "__main__":
    for stage_name, stage_args in STAGES:
        run_stage(stage_name, stage_args)
    print(f"All tests passed at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
