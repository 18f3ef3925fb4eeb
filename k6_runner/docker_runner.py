import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from .config import RunConfig
from .errors import PhaseFailedError
from .logs import get_logger
from .monitor import ResourceMonitor
from .scenarios import Phase

CONTAINER_K6_DIR = "/k6"
CONTAINER_RESULTS_DIR = "/results"


@dataclass
class PhaseResult:
    phase: Phase
    exit_code: int
    elapsed: float
    output_file: Path
    metrics: Dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class K6Runner:
    """Runs scenario phases as grafana/k6 containers, one at a time"""

    def __init__(
        self,
        config: RunConfig,
        client=None,
        sleep: Callable[[float], None] = time.sleep,
        monitor: Optional[ResourceMonitor] = None,
        pause: bool = True
    ):
        self.config = config
        self._client = client
        self.sleep = sleep
        self.monitor = monitor
        self.pause = pause
        self.results: List[PhaseResult] = []
        self.log = get_logger("docker")

    @property
    def docker_client(self):
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise PhaseFailedError("docker", f"cannot connect to Docker: {e}")
        return self._client

    def k6_command(self, phase: Phase) -> List[str]:
        return [
            "run",
            "--insecure-skip-tls-verify",
            "--out", f"json={CONTAINER_RESULTS_DIR}/{phase.name}.json",
            "--vus", str(phase.vus),
            "--duration", phase.duration,
            f"{CONTAINER_K6_DIR}/dist/{phase.test_file}",
        ]

    def environment(self) -> Dict[str, str]:
        return {
            "K6_ENV": self.config.test_env,
            "K6_MAX_VUS": str(self.config.max_vus),
        }

    def volumes(self) -> Dict[str, Dict[str, str]]:
        return {
            str(self.config.k6_dir): {"bind": CONTAINER_K6_DIR, "mode": "ro"},
            str(self.config.results_dir): {"bind": CONTAINER_RESULTS_DIR, "mode": "rw"},
        }

    def docker_command(self, phase: Phase) -> str:
        """Equivalent docker CLI invocation, for logs and dry runs"""
        cmd = ["docker", "run", "--rm", "--network", self.config.network_mode]
        for host, mount in self.volumes().items():
            cmd += ["-v", f"{host}:{mount['bind']}:{mount['mode']}"]
        for key, value in self.environment().items():
            cmd += ["-e", f"{key}={value}"]
        cmd += [self.config.k6_image] + self.k6_command(phase)
        return " ".join(shlex.quote(c) for c in cmd)

    def output_file(self, phase: Phase) -> Path:
        return self.config.results_dir / f"{phase.name}.json"

    def run_phase(self, phase: Phase) -> PhaseResult:
        """Run one k6 container to completion; raises PhaseFailedError on any failure"""
        self.log.info(f"🚀 Running: {phase.name}")
        self.log.info(f"Test file: {phase.test_file}")
        self.log.info(f"VUs: {phase.vus}, Duration: {phase.duration}")
        self.log.info(self.docker_command(phase))

        start_time = time.time()
        try:
            container = self.docker_client.containers.run(
                self.config.k6_image,
                command=self.k6_command(phase),
                environment=self.environment(),
                volumes=self.volumes(),
                network_mode=self.config.network_mode,
                detach=True
            )
        except ImageNotFound as e:
            raise PhaseFailedError(phase.name, f"k6 image not found: {e}")
        except APIError as e:
            raise PhaseFailedError(phase.name, f"docker API error: {e}")

        if self.monitor is not None:
            self.monitor.start(phase.name, container)
        try:
            self._stream_output(container)
            status = container.wait()
            exit_code = int(status.get("StatusCode", 1))
        except APIError as e:
            raise PhaseFailedError(phase.name, f"docker API error: {e}")
        finally:
            if self.monitor is not None:
                self.monitor.stop()
            self._remove(container)

        elapsed = time.time() - start_time
        if exit_code != 0:
            self.log.error(f"❌ {phase.name} failed with exit code {exit_code}")
            raise PhaseFailedError(phase.name, f"k6 exited with code {exit_code}", exit_code=exit_code)

        self.log.info(f"✅ {phase.name} completed in {elapsed:.1f}s\n")
        return PhaseResult(phase, exit_code, elapsed, self.output_file(phase))

    def _stream_output(self, container) -> None:
        k6_log = get_logger("k6")
        buffer = b""
        for chunk in container.logs(stream=True, follow=True):
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                k6_log.info(line.decode("utf-8", errors="replace").rstrip())
        if buffer:
            k6_log.info(buffer.decode("utf-8", errors="replace").rstrip())

    def _remove(self, container) -> None:
        try:
            container.remove(force=True)
        except APIError as e:
            self.log.warning(f"⚠️  Could not remove container {container.id}: {e}")

    def run_plan(self, phases: List[Phase]) -> List[PhaseResult]:
        """Run phases in order, pausing between them; stops at the first failure"""
        for i, phase in enumerate(phases):
            if len(phases) > 1:
                self.log.info(f"=== {phase.display} ===")
            self.results.append(self.run_phase(phase))

            is_last = i == len(phases) - 1
            if self.pause and phase.pause_after and not is_last:
                self.log.info(f"Waiting {phase.pause_after}s before next phase...")
                self.sleep(phase.pause_after)
        return self.results
