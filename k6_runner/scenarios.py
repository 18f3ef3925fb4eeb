from dataclasses import dataclass
from typing import List

from .config import normalize_duration
from .errors import UnknownScenarioError

SMOKE_TEST_FILE = "instant-servers.test.js"
E2E_TEST_FILE = "e2e-simple.test.js"

SCENARIOS = ("smoke", "baseline", "load", "stress", "full")

SCENARIO_TITLES = {
    "smoke": "SMOKE TEST",
    "baseline": "BASELINE TEST",
    "load": "LOAD TEST",
    "stress": "STRESS TEST",
    "full": "FULL TEST SUITE",
}

# Base VU counts, scaled down to MAX_VUS when the ceiling is lower
BASELINE_VUS = 10
LOAD_VUS = 50

# Full suite only runs the heavier phases when the ceiling allows them
LOAD_PHASE_MIN_VUS = 25
STRESS_PHASE_MIN_VUS = 50


@dataclass
class Phase:
    name: str
    test_file: str
    vus: int
    duration: str
    pause_after: int = 0
    display: str = ""

    def __post_init__(self):
        if not self.display:
            self.display = self.name


def calc_vus(base: int, max_vus: int) -> int:
    """Cap a scenario's base VU count at the configured ceiling"""
    return min(base, max_vus)


def _full_suite(max_vus: int) -> List[Phase]:
    phases = [
        Phase("phase1-smoke", SMOKE_TEST_FILE, 1, "30s", pause_after=10, display="Phase 1: Smoke Test"),
        Phase("phase2-single-e2e", E2E_TEST_FILE, 1, "1m", pause_after=10, display="Phase 2: Single E2E"),
        Phase("phase3-baseline", E2E_TEST_FILE, calc_vus(BASELINE_VUS, max_vus), "5m",
              pause_after=30, display="Phase 3: Baseline"),
    ]
    if max_vus >= LOAD_PHASE_MIN_VUS:
        phases.append(Phase("phase4-load", E2E_TEST_FILE, calc_vus(LOAD_VUS, max_vus), "10m",
                            pause_after=30, display="Phase 4: Load Test"))
    if max_vus >= STRESS_PHASE_MIN_VUS:
        phases.append(Phase("phase5-stress", E2E_TEST_FILE, max_vus, "15m", display="Phase 5: Stress Test"))
    return phases


def check_scenario(test_type: str) -> None:
    if test_type not in SCENARIOS:
        raise UnknownScenarioError(test_type, SCENARIOS)


def build_plan(test_type: str, max_vus: int, duration: str) -> List[Phase]:
    """Resolve a scenario name into the ordered phases it runs

    Only baseline, load and stress use the duration, so only they validate it.
    """
    check_scenario(test_type)
    if test_type == "smoke":
        return [Phase("smoke-test", SMOKE_TEST_FILE, 1, "30s", display="Smoke Test")]
    if test_type == "full":
        return _full_suite(max_vus)

    duration = normalize_duration(duration)
    if test_type == "baseline":
        return [Phase("baseline-test", E2E_TEST_FILE, calc_vus(BASELINE_VUS, max_vus), duration,
                      display="Baseline Test")]
    if test_type == "load":
        return [Phase("load-test", E2E_TEST_FILE, calc_vus(LOAD_VUS, max_vus), duration, display="Load Test")]
    return [Phase("stress-test", E2E_TEST_FILE, max_vus, duration, display="Stress Test")]
