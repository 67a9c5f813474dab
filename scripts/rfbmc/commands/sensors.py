"""Sensor commands: voltage readings and thresholds."""

import click

from rfbmc.cli import pass_context, run_on_nodes
from rfbmc.output import map_fields

VOLTAGE_MAPPINGS = [
    ("/Name", "Name"),
    ("/SensorNumber", "SensorNumber"),
    ("/UpperThresholdFatal", "UpperThresholdFatal"),
    ("/UpperThresholdCritical", "UpperThresholdCritical"),
    ("/UpperThresholdNonCritical", "UpperThresholdNonCritical"),
    ("/ReadingVolts", "ReadingVolts"),
    ("/LowerThresholdNonCritical", "LowerThresholdNonCritical"),
    ("/LowerThresholdCritical", "LowerThresholdCritical"),
    ("/LowerThresholdFatal", "LowerThresholdFatal"),
]


@click.group()
def sensors():
    """Sensor data commands."""
    pass


@sensors.command()
@click.option("--filter", "name_filter", default=None,
              help="Filter sensors by name (case-insensitive substring).")
@pass_context
def voltage(nctx, name_filter):
    """Get voltage sensor readings and thresholds."""
    def _op(client, node):
        data = client.get(f"{client.chassis_path()}/Power")
        voltages = [map_fields(v, VOLTAGE_MAPPINGS) for v in data.get("Voltages") or [] if isinstance(v, dict)]
        if name_filter:
            nf = name_filter.lower()
            voltages = [v for v in voltages if nf in str(v.get("Name") or "").lower()]
        return {"Voltages": voltages}

    run_on_nodes(nctx, _op, label="sensors voltage")
