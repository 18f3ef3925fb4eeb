import json
import statistics
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import RunConfig
from .docker_runner import PhaseResult
from .logs import get_logger

SUMMARY_NAME = "summary.json"

log = get_logger("results")


def percentile(values: List[float], pct: int) -> float:
    """Inclusive percentile so short phases still report real tail latency"""
    if not values:
        return 0
    if len(values) == 1:
        return values[0]
    return statistics.quantiles(values, n=100, method='inclusive')[pct - 1]


def summarize_k6_output(path: Path) -> Dict:
    """Reduce a k6 NDJSON output file to request counts and latency stats (ms)"""
    durations: List[float] = []
    failed_flags: List[float] = []
    iterations = 0

    path = Path(path)
    if path.exists():
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if obj.get('type') != 'Point':
                    continue
                value = (obj.get('data') or {}).get('value')
                if not isinstance(value, (int, float)):
                    continue
                metric = obj.get('metric')
                if metric == 'http_req_duration':
                    durations.append(float(value))
                elif metric == 'http_req_failed':
                    failed_flags.append(float(value))
                elif metric == 'iterations':
                    iterations += int(value)

    total = len(durations)
    failed = int(sum(failed_flags))

    return {
        'total_requests': total,
        'failed_requests': failed,
        'success_rate': (total - failed) / total if total else 0,
        'avg_response_time': statistics.mean(durations) if durations else 0,
        'median_response_time': statistics.median(durations) if durations else 0,
        'p95_response_time': percentile(durations, 95),
        'p99_response_time': percentile(durations, 99),
        'iterations': iterations,
    }


def _phase_entry(result: PhaseResult) -> Dict:
    return {
        'name': result.phase.name,
        'test_file': result.phase.test_file,
        'vus': result.phase.vus,
        'duration': result.phase.duration,
        'exit_code': result.exit_code,
        'elapsed_seconds': round(result.elapsed, 3),
        'output_file': result.output_file.name,
        'metrics': result.metrics,
    }


def write_summary(
    config: RunConfig,
    results: List[PhaseResult],
    status: str,
    started_at: datetime,
    finished_at: datetime,
    error: Optional[str] = None,
    failed_phase: Optional[str] = None
) -> Path:
    for result in results:
        if not result.metrics:
            result.metrics = summarize_k6_output(result.output_file)

    summary = {
        'test_type': config.test_type,
        'environment': config.test_env,
        'max_vus': config.max_vus,
        'duration': config.duration_label,
        'timestamp': config.timestamp,
        'k6_image': config.k6_image,
        'results_dir': str(config.results_dir),
        'status': status,
        'started_at': started_at.isoformat(),
        'finished_at': finished_at.isoformat(),
        'error': error,
        'failed_phase': failed_phase,
        'phases': [_phase_entry(r) for r in results],
    }

    path = config.results_dir / SUMMARY_NAME
    with open(path, 'w') as f:
        json.dump(summary, f, indent=2)
    log.info(f"Summary written to {path}")
    return path


def load_summary(path: Path) -> Dict:
    with open(path, 'r') as f:
        return json.load(f)


def human_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = float(num_bytes)
    for unit in ('K', 'M', 'G'):
        size /= 1024
        if size < 1024 or unit == 'G':
            break
    return f"{size:.1f}{unit}"


def list_generated_files(results_dir: Path) -> List[Tuple[str, str]]:
    return [
        (p.name, human_size(p.stat().st_size))
        for p in sorted(Path(results_dir).iterdir())
        if p.is_file()
    ]


def format_summary_table(summary: Dict) -> str:
    lines = [
        f"{summary['test_type']} on {summary['environment']} ({summary['timestamp']}): {summary['status']}"
    ]
    for phase in summary.get('phases', []):
        m = phase.get('metrics') or {}
        elapsed = phase.get('elapsed_seconds') or 0
        rps = m.get('total_requests', 0) / elapsed if elapsed else 0
        lines.append(
            f"{phase['name']:20} | VUs: {phase['vus']:4} | "
            f"Success: {m.get('success_rate', 0):6.2%} | "
            f"RPS: {rps:7.1f} | "
            f"Avg: {m.get('avg_response_time', 0):8.2f}ms | "
            f"P95: {m.get('p95_response_time', 0):8.2f}ms"
        )
    if summary.get('error'):
        lines.append(f"Error: {summary['error']}")
    return "\n".join(lines)
