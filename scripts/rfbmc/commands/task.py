"""Redfish task commands."""

import click

from rfbmc import TASK_POLL_INTERVAL
from rfbmc.cli import pass_context, run_on_nodes
from rfbmc.output import TASK_MAPPINGS, map_fields


@click.group()
def task():
    """Redfish async task commands."""
    pass


@task.command()
@click.argument("task_url")
@click.option("--interval", default=TASK_POLL_INTERVAL, show_default=True, type=click.IntRange(1),
              help="Seconds between polls.")
@pass_context
def wait(nctx, task_url, interval):
    """Wait until a task finishes; fails unless it completed successfully."""
    from rfbmc.update import UpdateError
    from rfbmc.update.poller import TaskPoller

    def _op(client, node):
        poller = TaskPoller(client, interval=interval)
        handle = poller.wait_until_finished(poller.fetch(task_url))
        if not handle.succeeded:
            raise UpdateError(
                handle.failure_message(),
                messages=[m.message for m in handle.messages if m.message],
            )
        return map_fields(handle.document, TASK_MAPPINGS)

    run_on_nodes(nctx, _op, label=f"task wait {task_url}")
