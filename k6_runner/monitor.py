import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .logs import get_logger

log = get_logger("monitor")


def cpu_percent(stats: Dict) -> Optional[float]:
    """CPU usage from a docker stats snapshot, None when the snapshot is incomplete"""
    try:
        cpu_delta = stats['cpu_stats']['cpu_usage']['total_usage'] - \
                    stats['precpu_stats']['cpu_usage']['total_usage']
        system_delta = stats['cpu_stats']['system_cpu_usage'] - \
                       stats['precpu_stats']['system_cpu_usage']

        # Handle different Docker API versions
        if 'percpu_usage' in stats['cpu_stats']['cpu_usage']:
            num_cpus = len(stats['cpu_stats']['cpu_usage']['percpu_usage'])
        else:
            num_cpus = stats['cpu_stats'].get('online_cpus', 1)

        if system_delta > 0:
            return (cpu_delta / system_delta) * num_cpus * 100
        return 0.0
    except (KeyError, TypeError):
        return None


def memory_mb(stats: Dict) -> Optional[float]:
    try:
        return stats['memory_stats']['usage'] / (1024 * 1024)
    except (KeyError, TypeError):
        return None


class ResourceMonitor:
    """Samples CPU and memory of the k6 containers while phases run"""

    def __init__(self, interval: float = 1.0):
        self.interval = interval
        self.data: Dict[str, Dict[str, List]] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sample(self, phase_name: str, container) -> bool:
        """Record one stats snapshot; returns False once the container is gone"""
        try:
            container.reload()
            if container.status != 'running':
                return False
            stats = container.stats(stream=False)
        except Exception as e:
            log.debug(f"Stats unavailable for {phase_name}: {e}")
            return False

        cpu = cpu_percent(stats)
        mem = memory_mb(stats)
        if cpu is None or mem is None:
            # first snapshot often lacks precpu data
            return True

        series = self.data.setdefault(phase_name, {'cpu': [], 'memory': [], 'timestamps': []})
        series['cpu'].append(cpu)
        series['memory'].append(mem)
        series['timestamps'].append(datetime.now())
        return True

    def start(self, phase_name: str, container) -> None:
        self._stop.clear()

        def _loop():
            while not self._stop.is_set():
                if not self.sample(phase_name, container):
                    break
                self._stop.wait(self.interval)

        self._thread = threading.Thread(target=_loop, name=f"monitor-{phase_name}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 5)
            self._thread = None

    def save_data(self, filename: Path) -> None:
        # Convert timestamps to strings for JSON serialization
        json_data = {}
        for phase, data in self.data.items():
            json_data[phase] = {
                'cpu': data['cpu'],
                'memory': data['memory'],
                'timestamps': [ts.isoformat() for ts in data['timestamps']]
            }

        with open(filename, 'w') as f:
            json.dump(json_data, f, indent=2)

        log.info(f"Resource samples saved to {filename}")

    def plot_resources(self, filename: Path) -> bool:
        if not any(d['timestamps'] for d in self.data.values()):
            log.warning("⚠️  No resource samples collected, skipping plot")
            return False

        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8))

        for phase, data in self.data.items():
            if data['timestamps']:
                ax1.plot(data['timestamps'], data['cpu'], label=phase)
                ax2.plot(data['timestamps'], data['memory'], label=phase)

        ax1.set_title('k6 CPU Usage Over Time')
        ax1.set_ylabel('CPU %')
        ax1.legend()
        ax1.grid(True)

        ax2.set_title('k6 Memory Usage Over Time')
        ax2.set_ylabel('Memory (MB)')
        ax2.set_xlabel('Time')
        ax2.legend()
        ax2.grid(True)

        plt.tight_layout()
        plt.savefig(filename, dpi=150, bbox_inches='tight')
        plt.close(fig)
        log.info(f"Resource plot saved to {filename}")
        return True
