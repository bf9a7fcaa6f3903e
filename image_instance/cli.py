"""
Click CLI for image-instance.
"""

import json
import logging
import signal
import sys
import threading
from typing import Optional

import click

from .config import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, resolve_request
from .errors import BackupCancelled, BackupError
from .orchestrator import BackupOrchestrator
from .provider import Ec2Provider

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _install_signal_handlers(cancel_event: threading.Event):
    """
    Make SIGTERM abort the run at its next poll instead of killing it mid-call.

    Returns:
        The previous SIGTERM handler, or None if none was replaced
    """
    def handler(signum, frame):
        cancel_event.set()

    try:
        return signal.signal(signal.SIGTERM, handler)
    except ValueError:
        # not in the main thread
        return None


def _restore_signal_handlers(previous) -> None:
    if previous is not None:
        signal.signal(signal.SIGTERM, previous)


def _report_failure(message: str, output_json: bool, phase: Optional[str] = None) -> None:
    if output_json:
        payload = {"status": "failed", "error": message}
        if phase:
            payload["phase"] = phase
        click.echo(json.dumps(payload))
    else:
        click.echo(f"❌ {message}", err=True)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-p", "--profile", envvar="AWS_PROFILE", help="AWS credentials profile (default: 'default').")
@click.option("-i", "--instance-id", help="Instance to image (default: the local instance).")
@click.option("-r", "--region", help="Region of the instance (default: queried from instance metadata).")
@click.option("-e", "--expire", help="When the image should be deleted, e.g. '+1 week' or '2027-01-31'. Default: never.")
@click.option("-d", "--dest-region", help="Another region to copy the image to, as an offline backup.")
@click.option("-t", "--timeout", type=int, default=DEFAULT_TIMEOUT, show_default=True,
              envvar="IMAGE_INSTANCE_TIMEOUT",
              help="Seconds before a wait is considered failed; values below 1 use the default.")
@click.option("--poll-interval", type=int, default=DEFAULT_POLL_INTERVAL, show_default=True,
              envvar="IMAGE_INSTANCE_POLL_INTERVAL", help="Seconds between state checks.")
@click.option("--json", "output_json", is_flag=True, help="Output machine-readable JSON.")
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or every poll (-vv).")
def main(profile, instance_id, region, expire, dest_region, timeout, poll_interval, output_json, verbose):
    """
    Create an AMI backup of a running EC2 instance and tag it and its snapshots.
    """
    _configure_logging(verbose)

    try:
        request = resolve_request(
            instance_id=instance_id,
            region=region,
            dest_region=dest_region,
            expire=expire,
            timeout=timeout,
            poll_interval=poll_interval,
            profile=profile,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'-e' / '--expire'")
    except BackupError as e:
        _report_failure(str(e), output_json, e.phase.value if e.phase else None)
        sys.exit(EXIT_FAILURE)

    cancel_event = threading.Event()
    previous_handler = _install_signal_handlers(cancel_event)

    try:
        provider = Ec2Provider(profile=request.profile)
        result = BackupOrchestrator(provider, request, cancel_event=cancel_event).run()
    except KeyboardInterrupt:
        _report_failure("Backup cancelled by user", output_json)
        sys.exit(EXIT_CANCELLED)
    except BackupCancelled as e:
        _report_failure(str(e), output_json, e.phase.value if e.phase else None)
        sys.exit(EXIT_CANCELLED)
    except BackupError as e:
        _report_failure(str(e), output_json, e.phase.value if e.phase else None)
        sys.exit(EXIT_FAILURE)
    finally:
        _restore_signal_handlers(previous_handler)

    if output_json:
        click.echo(json.dumps(result.to_dict()))
    else:
        click.echo(f"✅ {result.image.image_id} ({result.image.name}) in {result.image.region}")
        for snapshot_id in result.image.snapshot_ids:
            click.echo(f"   snapshot {snapshot_id}")
        if result.copy is not None:
            click.echo(f"✅ copy {result.copy.image_id} in {result.copy.region}")
            for snapshot_id in result.copy.snapshot_ids:
                click.echo(f"   snapshot {snapshot_id}")
    sys.exit(0)


if __name__ == "__main__":
    main()
