# zfs_sampler/cli.py - Command-line interface
"""
Command-line interface for the ZFS I/O sampler.
"""

import click
import logging
import signal
import sys
import yaml

from zfs_sampler.utils.logger import setup_logging
from zfs_sampler.utils.config import Config
from zfs_sampler.utils.helpers import check_prerequisites, get_node_name, parse_guid


logger = logging.getLogger(__name__)


def build_publisher(cfg: Config):
    """
    Create the publisher selected by output.format.
    """
    output_format = cfg.get('output.format')
    interval = cfg.get('sampler.interval')

    if output_format == 'prometheus':
        from zfs_sampler.exporters.prometheus import PrometheusPublisher
        publisher = PrometheusPublisher(port=cfg.get('output.prometheus_port'))
        publisher.start()
        return publisher

    if output_format == 'table':
        from zfs_sampler.exporters.stdout import StdoutExporter
        return StdoutExporter()

    from zfs_sampler.exporters.collectd import CollectdPublisher, build_transport
    transport = build_transport(
        cfg.get('output.socket'),
        timeout=cfg.get('output.timeout'),
        override=cfg.get('output.transport_override'),
    )
    node_name = cfg.get('sampler.node_name') or get_node_name()
    return CollectdPublisher(transport, node_name, interval)


def build_source_factory(cfg: Config):
    """
    Return a callable producing a fresh event source per session.
    """
    if cfg.get('capture.source') == 'synthetic':
        from zfs_sampler.collector.synthetic import SyntheticEventSource, random_workload
        pools = cfg.get('capture.synthetic_pools')
        batch = cfg.get('capture.synthetic_batch')
        return lambda: SyntheticEventSource(random_workload(pools, events_per_batch=batch))

    from zfs_sampler.collector.tracer import ZioTracer
    tracer_config = {
        'buffer_size': cfg.get('capture.buffer_size'),
        'include_dirs': cfg.get('capture.include_dirs', []),
    }
    return lambda: ZioTracer(tracer_config)


def _handle_sigterm(signum, frame):
    sys.exit(0)


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']))
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.option('--no-color', is_flag=True, help='Disable colored log output')
@click.pass_context
def cli(ctx, log_level, log_file, no_color):
    """
    ZFS I/O Sampler

    Samples ZFS reads and writes with eBPF and publishes per-pool and
    per-dataset latency, bandwidth and IOPS to collectd.
    """
    ctx.ensure_object(dict)

    setup_logging(level=log_level, log_file=log_file, use_colors=not no_color)

    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = log_file


@cli.command()
@click.option('--config', 'config_file', type=click.Path(), default='configs/default.yaml', help='Configuration file')
@click.option('--interval', type=int, help='Window length in seconds')
@click.option('--max-intervals', type=int, help='Windows per capture session before restart')
@click.option('--node-name', help='collectd host name (default: local host name)')
@click.option('--socket', 'socket_path', help='collectd unixsock socket path')
@click.option('--output-format', type=click.Choice(['collectd', 'prometheus', 'table']), help='Output format')
@click.option('--source', type=click.Choice(['zio', 'synthetic']), help='Capture source')
@click.option('--sessions', type=int, help='Stop after this many capture sessions')
@click.option('--skip-checks', is_flag=True, help='Skip environment prerequisite checks')
@click.pass_context
def run(ctx, config_file, interval, max_intervals, node_name, socket_path, output_format, source,
        sessions, skip_checks):
    """
    Sample ZFS operations and publish window rates.

    Runs capture sessions back to back until interrupted.

    Example:
        zfs-sampler run
        zfs-sampler run --interval 10 --output-format table
        ZFS_SAMPLER_TRANSPORT_OVERRIDE=stdout zfs-sampler run --source synthetic
    """
    from zfs_sampler.collector.supervisor import SessionSupervisor

    try:
        cfg = Config(config_file)
        cfg.load_from_env()
    except (OSError, ValueError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    overrides = {
        'sampler.interval': interval,
        'sampler.max_intervals': max_intervals,
        'sampler.node_name': node_name,
        'output.socket': socket_path,
        'output.format': output_format,
        'capture.source': source,
    }
    for key, value in overrides.items():
        if value is not None:
            cfg.set(key, value)

    interval_s = cfg.get('sampler.interval')
    if not isinstance(interval_s, int) or interval_s < 1 or cfg.get('sampler.max_intervals') < 1:
        click.echo("Error: interval must be a whole number of seconds and max-intervals at least 1", err=True)
        sys.exit(1)

    uses_socket = cfg.get('output.format') == 'collectd' and not cfg.get('output.transport_override')
    if not skip_checks and not check_prerequisites(
        socket_path=cfg.get('output.socket') if uses_socket else None,
        require_capture=cfg.get('capture.source') == 'zio',
    ):
        click.echo("Prerequisites check failed. Please fix issues above.", err=True)
        sys.exit(1)

    try:
        publisher = build_publisher(cfg)
    except OSError as e:
        click.echo(f"Error: cannot start publisher: {e}", err=True)
        sys.exit(1)

    supervisor = SessionSupervisor(
        build_source_factory(cfg),
        publisher,
        interval=cfg.get('sampler.interval'),
        max_intervals=cfg.get('sampler.max_intervals'),
        poll_timeout=cfg.get('sampler.poll_timeout'),
    )

    signal.signal(signal.SIGTERM, _handle_sigterm)
    logger.info(
        f"Sampling every {cfg.get('sampler.interval')}s, "
        f"{cfg.get('sampler.max_intervals')} windows per session, "
        f"output={cfg.get('output.format')}"
    )

    try:
        supervisor.run_forever(max_sessions=sessions)
    except KeyboardInterrupt:
        logger.info("Stopping sampler...")
    finally:
        stats = supervisor.get_stats()
        logger.info(
            f"Ran {stats['sessions_started']} sessions "
            f"({stats['restarts']} restarts, {stats['failures']} failures)"
        )


@cli.command()
@click.option('--socket', 'socket_path', default=None, help='Also verify this collectd socket')
def check(socket_path):
    """
    Check system prerequisites for running the sampler.

    Verifies:
    - Root privileges
    - BCC installation
    - Kernel eBPF support
    - ZFS kernel module
    - collectd socket (with --socket)
    """
    if check_prerequisites(socket_path=socket_path):
        click.echo("\n✓ All prerequisites met!")
        sys.exit(0)
    else:
        click.echo("\n✗ Some prerequisites are missing")
        sys.exit(1)


@cli.command()
@click.argument('guids', nargs=-1, required=True)
def encode(guids):
    """
    Show the metric-path token for pool or dataset GUIDs.

    Example:
        zfs-sampler encode 0x1 12345678901234567890
    """
    from zfs_sampler.collector.guid_encoder import encode_guid

    for text in guids:
        try:
            token = encode_guid(parse_guid(text))
        except ValueError as e:
            click.echo(f"Error: {text}: {e}", err=True)
            sys.exit(1)
        click.echo(f"{text}\t{token}")


if __name__ == '__main__':
    cli(obj={})
