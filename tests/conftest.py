from __future__ import annotations

import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest  # noqa: E402
from hypothesis import HealthCheck, settings  # noqa: E402

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from spacetime_engine import EngineOptions, ExecutionEngine, ExecutionResult  # noqa: E402
from spacetime_parser import compile_source  # noqa: E402

TEST_SEED = 1337

settings.register_profile(
    "ci",
    max_examples=60,
    deadline=None,
    derandomize=True,
    print_blob=True,
    suppress_health_check=(HealthCheck.filter_too_much, HealthCheck.too_slow),
)
settings.load_profile("ci")


@pytest.fixture()
def output() -> list:
    return []


@pytest.fixture()
def engine(output: list) -> ExecutionEngine:
    return ExecutionEngine(EngineOptions(print_sink=output.append))


@pytest.fixture()
def run(engine: ExecutionEngine):
    """Compile and execute a script, returning the ExecutionResult"""

    def _run(source: str, bindings=None, frame_number=None) -> ExecutionResult:
        return engine.execute(compile_source(source), bindings, frame_number)

    return _run


@pytest.fixture()
def printed(run):
    """Run a script and return its print output"""

    def _printed(source: str, bindings=None, frame_number=None) -> list:
        return run(source, bindings, frame_number).output

    return _printed
