"""Firmware commands: version inventory and out-of-band update."""

import re

import click

from rfbmc import REDFISH_FIRMWARE_INVENTORY, UPDATE_MAX_ROUNDS
from rfbmc.cli import pass_context, run_on_nodes
from rfbmc.output import map_fields

# activation behaviour per firmware type
SUPPORT_ACTIVATE_TYPES = {
    "BMC": ["automatic"],
    "BIOS": ["dcpowercycle"],
    "CPLD": ["dcpowercycle"],
}


def _firmware_type_handler(target, key, software_id):
    """Type is the first segment of SoftwareId, e.g. ``BMC-1.2`` -> ``BMC``."""
    fw_type = str(software_id).split("-", 1)[0]
    target[key] = fw_type
    target["SupportActivateType"] = SUPPORT_ACTIVATE_TYPES.get(fw_type)


def _leading_int(segment):
    match = re.match(r"\s*(\d+)", segment)
    return int(match.group(1)) if match else 0


def _version_handler(target, key, version):
    """Normalise ``3.1.5`` to ``3.01.05``; each segment contributes its leading digits."""
    segments = str(version).split(".")
    minor = _leading_int(segments[1]) if len(segments) > 1 else 0
    patch = _leading_int(segments[2]) if len(segments) > 2 else 0
    target[key] = f"{segments[0]}.{minor:02d}.{patch:02d}"


FIRMWARE_MAPPINGS = [
    ("/Name", "Name"),
    ("/SoftwareId", "Type", _firmware_type_handler),
    ("/Version", "Version", _version_handler),
    ("/Updateable", "Updateable"),
]


@click.group()
def firmware():
    """Firmware inventory and update commands."""
    pass


@firmware.command()
@pass_context
def version(nctx):
    """Get firmware version information."""
    def _op(client, node):
        data = client.get(REDFISH_FIRMWARE_INVENTORY)
        versions = []
        for member in data.get("Members", []):
            uri = member.get("@odata.id", "")
            if uri:
                versions.append(map_fields(client.get(uri), FIRMWARE_MAPPINGS))
        return {"Firmware": versions}

    run_on_nodes(nctx, _op, label="firmware version")


@firmware.command()
@click.option("--image-uri", "-u", default=None,
              help="Firmware image: local file, BMC /tmp/ path, or remote URI "
                   "(HTTPS, SCP, SFTP, CIFS, TFTP, NFS).")
@click.option("--activate-mode", "-e", default=None, help="Firmware activate mode, choices: {Auto, Manual}.")
@click.option("--firmware-type", "-t", default=None, help="Firmware type, choices: {BMC, BIOS, CPLD, PSUFW}.")
@click.option("--journal-dir", default=".", type=click.Path(file_okay=False),
              help="Directory in which the <timestamp>_<SN> update log folder is created.")
@click.option("--max-rounds", default=UPDATE_MAX_ROUNDS, show_default=True, type=click.IntRange(1),
              help="Maximum update attempts.")
@click.option("--reset-bmc-on-failure", is_flag=True,
              help="With Auto activation, restart an unresponsive BMC before retrying.")
@pass_context
def update(nctx, image_uri, activate_mode, firmware_type, journal_dir, max_rounds, reset_bmc_on_failure):
    """Update outband firmware, retrying failed attempts."""
    from rfbmc.update.orchestrator import FirmwareUpdater

    def _op(client, node):
        updater = FirmwareUpdater(
            client,
            journal_dir=journal_dir,
            max_rounds=max_rounds,
            reset_on_failure=reset_bmc_on_failure,
        )
        return updater.run(image_uri, activate_mode, firmware_type)

    run_on_nodes(nctx, _op, label="firmware update")
