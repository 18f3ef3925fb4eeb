import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from .config import RunConfig, env_test_type
from .docker_runner import K6Runner
from .errors import ConfigError, PhaseFailedError, UnknownScenarioError
from .health import check_target
from .logs import attach_run_log, detach_run_log, get_logger, setup_console
from .monitor import ResourceMonitor
from .results import (
    format_summary_table,
    list_generated_files,
    load_summary,
    write_summary,
)
from .scenarios import SCENARIO_TITLES, SCENARIOS, Phase, build_plan, check_scenario

RULE = "=" * 40


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="k6-run",
        description="Run k6 performance tests in Docker. Flags override the matching environment variables."
    )
    parser.add_argument('--type', dest='test_type', help=f'Test type, one of: {", ".join(SCENARIOS)} (TEST_TYPE)')
    parser.add_argument('--env', dest='test_env', help='Target environment name (TEST_ENV)')
    parser.add_argument('--max-vus', type=int, help='Concurrency ceiling for every phase (MAX_VUS)')
    parser.add_argument('--duration', dest='test_duration',
                        help='Duration for baseline/load/stress, minutes or a k6 duration (TEST_DURATION)')
    parser.add_argument('--timestamp', help='Run timestamp used in the results directory name (TIMESTAMP)')
    parser.add_argument('--image', dest='k6_image', help='k6 Docker image (K6_IMAGE)')
    parser.add_argument('--k6-dir', type=Path, help='Directory holding dist/*.test.js, mounted at /k6 (K6_DIR)')
    parser.add_argument('--results-root', type=Path, help='Parent directory for run results (RESULTS_ROOT)')
    parser.add_argument('--network', dest='network_mode', help='Docker network mode (DOCKER_NETWORK)')
    parser.add_argument('--check-target', dest='target_url', help='URL to check before the first phase (TARGET_URL)')
    parser.add_argument('--monitor', action='store_true', help='Sample k6 container CPU/memory and plot them')
    parser.add_argument('--no-pause', action='store_true', help='Skip the fixed pauses between phases')
    parser.add_argument('--dry-run', action='store_true', help='Print the planned phases without running docker')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def print_banner(config: RunConfig) -> None:
    log = get_logger()
    log.info(RULE)
    log.info("K6 Performance Tests")
    log.info(RULE)
    log.info(f"Environment:  {config.test_env}")
    log.info(f"Max VUs:      {config.max_vus}")
    log.info(f"Test Type:    {config.test_type}")
    log.info(f"Duration:     {config.duration_label}")
    log.info(f"Results:      {config.results_dir}")
    log.info(RULE + "\n")


def print_plan(runner: K6Runner, phases: List[Phase]) -> None:
    log = get_logger()
    log.info("Planned phases:")
    for phase in phases:
        pause = f", then wait {phase.pause_after}s" if phase.pause_after else ""
        log.info(f"  {phase.display}: {phase.test_file} with {phase.vus} VUs for {phase.duration}{pause}")
        log.info(f"    {runner.docker_command(phase)}")


def _finish_monitor(monitor: Optional[ResourceMonitor], results_dir: Path) -> None:
    if monitor is None:
        return
    monitor.save_data(results_dir / "resources.json")
    try:
        monitor.plot_resources(results_dir / "resource_usage.png")
    except Exception as e:
        get_logger().warning(f"⚠️  Could not generate resource plot: {e}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log = setup_console(logging.DEBUG if args.verbose else logging.INFO)

    # an unknown name wins over any other configuration problem
    try:
        check_scenario(args.test_type or env_test_type())
    except UnknownScenarioError as e:
        log.error(f"❌ {e}")
        log.error(f"Valid types: {', '.join(e.valid)}")
        return 1

    try:
        config = RunConfig.from_env(
            test_type=args.test_type,
            test_env=args.test_env,
            max_vus=args.max_vus,
            test_duration=args.test_duration,
            timestamp=args.timestamp,
            k6_image=args.k6_image,
            k6_dir=args.k6_dir,
            results_root=args.results_root,
            network_mode=args.network_mode,
            target_url=args.target_url,
        )
        phases = build_plan(config.test_type, config.max_vus, config.test_duration)
    except ConfigError as e:
        log.error(f"❌ {e}")
        return 1

    monitor = ResourceMonitor() if args.monitor else None
    runner = K6Runner(config, monitor=monitor, pause=not args.no_pause)

    if args.dry_run:
        print_banner(config)
        print_plan(runner, phases)
        return 0

    results_dir = config.results_dir
    results_dir.mkdir(parents=True, exist_ok=True)
    run_log = attach_run_log(results_dir)
    started_at = datetime.now()

    try:
        print_banner(config)

        if config.target_url and not check_target(config.target_url):
            write_summary(config, [], "failed", started_at, datetime.now(),
                          error=f"target {config.target_url} unreachable")
            return 1

        log.info(f"=== {SCENARIO_TITLES[config.test_type]} ===\n")

        try:
            runner.run_plan(phases)
        except PhaseFailedError as e:
            log.error(f"❌ {e}")
            write_summary(config, runner.results, "failed", started_at, datetime.now(),
                          error=str(e), failed_phase=e.phase_name)
            return 1
        finally:
            _finish_monitor(monitor, results_dir)

        write_summary(config, runner.results, "passed", started_at, datetime.now())

        log.info(f"\n{RULE}")
        log.info("✅ Tests Completed Successfully!")
        log.info(RULE)
        log.info(f"Results saved to: {results_dir}\n")
        log.info("Generated files:")
        for name, size in list_generated_files(results_dir):
            log.info(f"  {size:>8}  {name}")
        return 0
    finally:
        detach_run_log(run_log)


def show_results(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="k6-results", description="Print the phase table of a finished run")
    parser.add_argument('summary', type=Path, help='Path to summary.json, or the run directory holding it')
    args = parser.parse_args(argv)

    path = args.summary
    if path.is_dir():
        path = path / "summary.json"
    if not path.exists():
        print(f"❌ No summary found at {path}", file=sys.stderr)
        return 1

    print(format_summary_table(load_summary(path)))
    return 0
