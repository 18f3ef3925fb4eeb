import json
from unittest.mock import MagicMock

import pytest

from k6_runner.config import RunConfig

TEST_ENV_VARS = [
    "TEST_ENV", "MAX_VUS", "TEST_TYPE", "TEST_DURATION", "TIMESTAMP",
    "K6_IMAGE", "K6_DIR", "RESULTS_ROOT", "DOCKER_NETWORK", "TARGET_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's shell settings out of the tests"""
    for name in TEST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    cfg = RunConfig(
        test_env="staging",
        max_vus=50,
        test_type="smoke",
        timestamp="2024-01-02_03-04-05",
        k6_dir=tmp_path / "k6",
        results_root=tmp_path / "results",
    )
    cfg.results_dir.mkdir(parents=True)
    return cfg


def k6_points(durations, failed=0):
    """NDJSON lines in the shape k6 writes with --out json="""
    lines = [json.dumps({"type": "Metric", "metric": "http_req_duration", "data": {"type": "trend"}})]
    for i, value in enumerate(durations):
        lines.append(json.dumps({
            "type": "Point", "metric": "http_req_duration",
            "data": {"time": "2024-01-02T03:04:05Z", "value": value, "tags": {"name": "GET /"}}
        }))
        lines.append(json.dumps({
            "type": "Point", "metric": "http_req_failed",
            "data": {"time": "2024-01-02T03:04:05Z", "value": 1 if i < failed else 0}
        }))
    lines.append(json.dumps({"type": "Point", "metric": "iterations", "data": {"value": 1}}))
    return "\n".join(lines) + "\n"


def make_container(exit_code=0, output=(b"running (0m01s)\n", b"done\n")):
    container = MagicMock()
    container.id = "abc123"
    container.logs.return_value = iter(output)
    container.wait.return_value = {"StatusCode": exit_code}
    return container


@pytest.fixture
def docker_client():
    """Fake docker client whose containers all exit cleanly unless told otherwise"""
    client = MagicMock()
    client.containers.run.side_effect = lambda *args, **kwargs: make_container()
    return client
