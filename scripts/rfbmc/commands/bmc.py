"""BMC management commands: reset and temp storage file transfer."""

import os

import click

from rfbmc.cli import pass_context, run_on_nodes
from rfbmc.client import BMCConnectionError


@click.group()
def bmc():
    """BMC reset and file transfer."""
    pass


@bmc.command(name="reset")
@click.option("--wait", is_flag=True, help="Wait until the BMC answers again.")
@pass_context
def bmc_reset(nctx, wait):
    """Force restart the BMC."""
    from rfbmc.update.recovery import request_reset, wait_until_alive

    def _op(client, node):
        request_reset(client)
        if not wait:
            return {"message": "BMC reset requested"}
        if wait_until_alive(client):
            return {"message": "BMC reset and reachable again"}
        raise BMCConnectionError(f"BMC {node.hostname} did not come back after reset")

    run_on_nodes(nctx, _op, label="bmc reset")


@bmc.command(name="upload")
@click.argument("local_file", type=click.Path(exists=True, dir_okay=False))
@pass_context
def bmc_upload(nctx, local_file):
    """Upload a file to the BMC temp storage."""
    def _op(client, node):
        bmc_path = client.upload_file(local_file)
        return {"message": f"Uploaded {local_file}", "file": bmc_path}

    run_on_nodes(nctx, _op, label="bmc upload")


@bmc.command(name="download")
@click.argument("bmc_file")
@click.argument("local_file", type=click.Path(dir_okay=False))
@pass_context
def bmc_download(nctx, bmc_file, local_file):
    """Download a file from the BMC temp storage."""
    def _op(client, node):
        target = local_file
        if len(nctx.nodes) > 1:
            root, ext = os.path.splitext(local_file)
            target = f"{root}_{node.hostname}{ext}"
        size = client.download_file(bmc_file, target)
        return {"message": f"Downloaded {bmc_file}", "file": target, "bytes": size}

    run_on_nodes(nctx, _op, label="bmc download")
