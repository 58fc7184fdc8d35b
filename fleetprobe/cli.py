"""fleetprobe CLI - load tests for multi-cluster resource placement."""

import json
import logging
import signal
import sys
import threading
from typing import Any, Dict, Optional, Tuple

import click

from fleetprobe.config.loader import LoadTestConfig, ManifestBundle, load_bundle, load_config
from fleetprobe.config.validator import validate_bundle, validate_config
from fleetprobe.hub.client import HubClient
from fleetprobe.loadtest import LoadTest
from fleetprobe.metrics.aggregator import MetricsAggregator
from fleetprobe.probe.errors import ProbeSetupError
from fleetprobe.probe.phases import ProbeSettings
from fleetprobe.probe.runner import run_probe


def configure_logging(verbose: int) -> None:
    """Root log level: WARNING, INFO with -v, DEBUG with -vv."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )
    # the kubernetes client logs every request at DEBUG
    logging.getLogger("kubernetes").setLevel(max(level, logging.INFO))
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))


def _build_config(config_file: Optional[str], overrides: Dict[str, Any]) -> LoadTestConfig:
    """Load, merge and validate the load-test config, exiting on error."""
    try:
        cfg = load_config(config_file, overrides)
        validate_config(cfg.to_dict())
    except Exception as e:
        click.echo(f"Error loading config: {e}", err=True)
        for detail in getattr(e, "errors", []):
            click.echo(f"  - {detail}", err=True)
        sys.exit(1)

    if not cfg.bundle:
        click.echo("Error: a manifest bundle is required (--bundle or 'bundle' in the config file)", err=True)
        sys.exit(1)
    return cfg


def _load_bundle(cfg: LoadTestConfig) -> ManifestBundle:
    click.echo(f"Loading bundle from {cfg.bundle}...")
    try:
        bundle = load_bundle(cfg.bundle)
        validate_bundle(bundle, use_test_resources=cfg.use_test_resources)
    except Exception as e:
        click.echo(f"Error loading bundle: {e}", err=True)
        for detail in getattr(e, "errors", []):
            click.echo(f"  - {detail}", err=True)
        sys.exit(1)

    click.echo(f"  Placement template: {bundle.placement.get('metadata', {}).get('name', '<unnamed>')}")
    click.echo(f"  Test resources: {len(bundle.resources)}")
    return bundle


def _connect(cfg: LoadTestConfig) -> HubClient:
    try:
        return HubClient(kubeconfig=cfg.kubeconfig, context=cfg.context)
    except Exception as e:
        click.echo(f"Error connecting to the hub cluster: {e}", err=True)
        sys.exit(1)


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, frame):
        click.echo(f"\nReceived signal {signum}, cancelling probe runs...", err=True)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _overrides(
    bundle: Optional[str],
    concurrency: Optional[int],
    duration: Optional[float],
    deadline: Optional[float],
    poll_interval: Optional[float],
    use_test_resources: Optional[bool],
    cluster: Tuple[str, ...],
    kubeconfig: Optional[str],
    context: Optional[str],
) -> Dict[str, Any]:
    return {
        "bundle": bundle,
        "concurrency": concurrency,
        "duration": duration,
        "deadline": deadline,
        "poll_interval": poll_interval,
        "use_test_resources": use_test_resources,
        "cluster_names": list(cluster) or None,
        "kubeconfig": kubeconfig,
        "context": context,
    }


def common_options(func):
    """Options shared by ``run`` and ``probe``."""
    options = [
        click.option("--config", "-c", "config_file", type=click.Path(exists=True),
                     help="Load-test config YAML (CLI options override it)"),
        click.option("--bundle", "-b", type=click.Path(exists=True),
                     help="Placement template + test resources (file or directory)"),
        click.option("--deadline", type=float, default=None,
                     help="Seconds to wait for each phase [default: 300]"),
        click.option("--poll-interval", type=float, default=None,
                     help="Seconds between status checks [default: 5]"),
        click.option("--use-test-resources/--no-test-resources", default=None,
                     help="Create and delete the bundle's test resources"),
        click.option("--cluster", multiple=True,
                     help="Known member cluster name (repeatable)"),
        click.option("--kubeconfig", type=click.Path(), default=None,
                     help="Kubeconfig of the hub cluster"),
        click.option("--context", default=None, help="Kubeconfig context"),
        click.option("--json", "json_output", is_flag=True, help="Print the final metrics as JSON"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _print_report(metrics: MetricsAggregator, use_test_resources: bool, json_output: bool) -> None:
    click.echo(f"\n{'=' * 50}")
    if json_output:
        click.echo(json.dumps(metrics.snapshot(), indent=2, default=str))
    else:
        metrics.print_metrics(use_test_resources)


@click.group()
@click.version_option(package_name="fleetprobe")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v info, -vv debug)")
def main(verbose: int):
    """fleetprobe - load testing for multi-cluster resource placement.

    Creates ClusterResourcePlacements on a fleet hub cluster, measures how
    long they take to become available and to roll out updates, and
    reports latency and outcome metrics.
    """
    configure_logging(verbose)


@main.command()
@common_options
@click.option("--concurrency", "-n", type=int, default=None,
              help="Probe runs kept in flight [default: 10]")
@click.option("--duration", "-d", type=float, default=None,
              help="Load-test length in seconds [default: 1200]")
def run(
    config_file: Optional[str],
    bundle: Optional[str],
    deadline: Optional[float],
    poll_interval: Optional[float],
    use_test_resources: Optional[bool],
    cluster: Tuple[str, ...],
    kubeconfig: Optional[str],
    context: Optional[str],
    json_output: bool,
    concurrency: Optional[int],
    duration: Optional[float],
):
    """Run a load test and print the collected metrics.

    \b
    Example:
      fleetprobe -v run --bundle manifests/ --use-test-resources \\
        --concurrency 20 --duration 600 --deadline 120
    """
    cfg = _build_config(config_file, _overrides(
        bundle, concurrency, duration, deadline, poll_interval,
        use_test_resources, cluster, kubeconfig, context,
    ))
    manifest_bundle = _load_bundle(cfg)
    hub = _connect(cfg)

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    metrics = MetricsAggregator()
    load_test = LoadTest(hub, manifest_bundle, cfg, metrics=metrics, stop_event=stop_event)

    click.echo(
        f"\nRunning load test: concurrency={cfg.concurrency} duration={cfg.duration:.0f}s "
        f"deadline={cfg.deadline:.0f}s interval={cfg.poll_interval:g}s"
    )
    summary = load_test.run()
    click.echo(
        f"  Probe runs: {summary.runs} "
        f"(setup failures: {summary.setup_failures}, errors: {summary.errors}, cancelled: {summary.cancelled}) "
        f"in {summary.elapsed:.0f}s"
    )

    _print_report(metrics, cfg.use_test_resources, json_output)


@main.command()
@common_options
def probe(
    config_file: Optional[str],
    bundle: Optional[str],
    deadline: Optional[float],
    poll_interval: Optional[float],
    use_test_resources: Optional[bool],
    cluster: Tuple[str, ...],
    kubeconfig: Optional[str],
    context: Optional[str],
    json_output: bool,
):
    """Run a single placement probe and print its metrics."""
    cfg = _build_config(config_file, _overrides(
        bundle, 1, None, deadline, poll_interval,
        use_test_resources, cluster, kubeconfig, context,
    ))
    manifest_bundle = _load_bundle(cfg)
    hub = _connect(cfg)

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    metrics = MetricsAggregator()
    settings = ProbeSettings(
        deadline=cfg.deadline,
        poll_interval=cfg.poll_interval,
        concurrency=1,
        use_test_resources=cfg.use_test_resources,
        expected_residual_resources=cfg.expected_residual_resources,
    )

    click.echo("\nRunning probe...")
    try:
        result = run_probe(hub, manifest_bundle, settings, metrics, cfg.cluster_names, stop_event)
    except ProbeSetupError as e:
        click.echo(f"  Error: {e}", err=True)
        _print_report(metrics, cfg.use_test_resources, json_output)
        sys.exit(1)

    click.echo(f"  Placement: {result.placement_name}")
    click.echo(f"  Fleet size: {result.fleet.size}")
    for phase, state in result.outcomes.items():
        click.echo(f"  {phase}: {state.value}")
    if result.cleanup_errors:
        click.echo(f"  Cleanup errors: {'; '.join(result.cleanup_errors)}", err=True)

    _print_report(metrics, cfg.use_test_resources, json_output)


@main.command()
@click.argument("bundle_path", type=click.Path(exists=True))
@click.option("--use-test-resources/--no-test-resources", default=None,
              help="Also check the bundle against the test-resource mode")
def validate(bundle_path: str, use_test_resources: Optional[bool]):
    """Validate a manifest bundle without touching a cluster.

    BUNDLE_PATH is a YAML file or a directory with exactly one
    ClusterResourcePlacement and any number of namespaced test resources.
    """
    click.echo(f"Validating bundle {bundle_path}...")
    try:
        bundle = load_bundle(bundle_path)
        validate_bundle(bundle, use_test_resources=use_test_resources)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        for detail in getattr(e, "errors", []):
            click.echo(f"  - {detail}", err=True)
        sys.exit(1)

    selectors = bundle.placement.get("spec", {}).get("resourceSelectors") or []
    click.echo(f"  Files: {len(bundle.files)}")
    click.echo(f"  Resource selectors: {len(selectors)}")
    click.echo(f"  Test resources: {len(bundle.resources)}")
    for kind in sorted(set(bundle.resource_kinds)):
        click.echo(f"    {kind}: {bundle.resource_kinds.count(kind)}")
    click.echo("Bundle is valid")


if __name__ == "__main__":
    main()
