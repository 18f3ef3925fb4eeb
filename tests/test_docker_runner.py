from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, ImageNotFound

from k6_runner.docker_runner import K6Runner
from k6_runner.errors import PhaseFailedError
from k6_runner.scenarios import build_plan

from conftest import make_container


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def runner(config, docker_client, sleeps):
    return K6Runner(config, client=docker_client, sleep=sleeps.append)


class TestContainerInvocation:
    """The k6 container is started the way the CI script did it"""

    def test_run_arguments(self, runner, docker_client, config):
        phase, = build_plan("baseline", config.max_vus, "5m")
        runner.run_phase(phase)

        args, kwargs = docker_client.containers.run.call_args
        assert args == ("grafana/k6:latest",)
        assert kwargs["command"] == [
            "run",
            "--insecure-skip-tls-verify",
            "--out", "json=/results/baseline-test.json",
            "--vus", "10",
            "--duration", "5m",
            "/k6/dist/e2e-simple.test.js",
        ]
        assert kwargs["environment"] == {"K6_ENV": "staging", "K6_MAX_VUS": "50"}
        assert kwargs["network_mode"] == "host"
        assert kwargs["detach"] is True
        assert kwargs["volumes"] == {
            str(config.k6_dir): {"bind": "/k6", "mode": "ro"},
            str(config.results_dir): {"bind": "/results", "mode": "rw"},
        }

    def test_result_points_into_results_dir(self, runner, config):
        phase, = build_plan("smoke", config.max_vus, "5m")
        result = runner.run_phase(phase)
        assert result.success
        assert result.exit_code == 0
        assert result.output_file == config.results_dir / "smoke-test.json"

    def test_container_removed_after_run(self, config):
        container = make_container()
        client = MagicMock()
        client.containers.run.return_value = container
        K6Runner(config, client=client).run_phase(build_plan("smoke", 50, "5m")[0])
        container.remove.assert_called_once_with(force=True)

    def test_docker_command_text(self, runner, config):
        phase, = build_plan("smoke", config.max_vus, "5m")
        cmd = runner.docker_command(phase)
        assert cmd.startswith("docker run --rm --network host ")
        assert f"{config.k6_dir}:/k6:ro" in cmd
        assert "grafana/k6:latest run --insecure-skip-tls-verify" in cmd
        assert cmd.endswith("/k6/dist/instant-servers.test.js")

    def test_streams_output_to_run_log(self, config, tmp_path):
        from k6_runner.logs import attach_run_log, detach_run_log, setup_console

        setup_console()
        container = make_container(output=(b"checks....: 100", b".00%\nhttp_reqs: 42\n", b"tail"))
        client = MagicMock()
        client.containers.run.return_value = container

        handler = attach_run_log(config.results_dir)
        try:
            K6Runner(config, client=client).run_phase(build_plan("smoke", 50, "5m")[0])
        finally:
            detach_run_log(handler)

        text = (config.results_dir / "run.log").read_text()
        assert "checks....: 100.00%" in text
        assert "http_reqs: 42" in text
        assert "tail" in text


class TestFailures:
    def test_nonzero_exit_raises(self, config):
        container = make_container(exit_code=99)
        client = MagicMock()
        client.containers.run.return_value = container

        with pytest.raises(PhaseFailedError) as exc:
            K6Runner(config, client=client).run_phase(build_plan("smoke", 50, "5m")[0])
        assert exc.value.phase_name == "smoke-test"
        assert exc.value.exit_code == 99
        container.remove.assert_called_once()

    def test_missing_image(self, config):
        client = MagicMock()
        client.containers.run.side_effect = ImageNotFound("no such image")
        with pytest.raises(PhaseFailedError, match="image not found"):
            K6Runner(config, client=client).run_phase(build_plan("smoke", 50, "5m")[0])

    def test_api_error(self, config):
        client = MagicMock()
        client.containers.run.side_effect = APIError("boom")
        with pytest.raises(PhaseFailedError, match="docker API error"):
            K6Runner(config, client=client).run_phase(build_plan("smoke", 50, "5m")[0])

    def test_docker_unavailable(self, config):
        with patch("k6_runner.docker_runner.docker.from_env", side_effect=DockerException("no socket")):
            with pytest.raises(PhaseFailedError, match="cannot connect to Docker"):
                K6Runner(config).run_phase(build_plan("smoke", 50, "5m")[0])


class TestRunPlan:
    def test_full_suite_pauses_between_phases(self, runner, docker_client, sleeps):
        phases = build_plan("full", 50, "5m")
        results = runner.run_plan(phases)

        assert [r.phase.name for r in results] == [p.name for p in phases]
        assert docker_client.containers.run.call_count == 5
        assert sleeps == [10, 10, 30, 30]

    def test_no_pause_after_last_phase(self, runner, sleeps):
        runner.run_plan(build_plan("full", 24, "5m"))
        assert sleeps == [10, 10]

    def test_pauses_disabled(self, config, docker_client, sleeps):
        K6Runner(config, client=docker_client, sleep=sleeps.append, pause=False).run_plan(build_plan("full", 50, "5m"))
        assert sleeps == []

    def test_stops_at_first_failure(self, config, sleeps):
        exits = iter([0, 0, 1, 0, 0])
        client = MagicMock()
        client.containers.run.side_effect = lambda *a, **kw: make_container(exit_code=next(exits))
        runner = K6Runner(config, client=client, sleep=sleeps.append)

        with pytest.raises(PhaseFailedError) as exc:
            runner.run_plan(build_plan("full", 50, "5m"))

        assert exc.value.phase_name == "phase3-baseline"
        assert client.containers.run.call_count == 3
        assert [r.phase.name for r in runner.results] == ["phase1-smoke", "phase2-single-e2e"]
        assert sleeps == [10, 10]


class TestMonitoring:
    def test_monitor_wraps_each_phase(self, config, docker_client):
        monitor = MagicMock()
        runner = K6Runner(config, client=docker_client, monitor=monitor)
        runner.run_phase(build_plan("smoke", 50, "5m")[0])
        assert monitor.start.call_args[0][0] == "smoke-test"
        monitor.stop.assert_called_once()
