"""Output formatting for rfbmc - result envelopes, field mapping, human-readable and JSON modes."""

import json
import sys

import click

from rfbmc import STATE_FAILURE, STATE_SUCCESS


def format_json(data):
    """Format data as pretty-printed JSON."""
    return json.dumps(data, indent=2)


def build_result(state, messages):
    """Build the ``{"State": ..., "Message": [...]}`` envelope."""
    if not isinstance(messages, list):
        messages = [messages]
    return {"State": state, "Message": messages}


def success_result(data=None):
    if data is None:
        data = "Success: successfully completed request"
    return build_result(STATE_SUCCESS, data)


def failure_result(messages):
    return build_result(STATE_FAILURE, messages)


def resolve_pointer(source, pointer):
    """Resolve a JSON pointer (``/Messages/0/Message``) against a document.

    Returns None when any segment is missing.
    """
    node = source
    for token in pointer.lstrip("/").split("/"):
        if token == "":
            continue
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(node, list):
            try:
                node = node[int(token)]
            except (ValueError, IndexError):
                return None
        elif isinstance(node, dict):
            if token not in node:
                return None
            node = node[token]
        else:
            return None
    return node


def map_fields(source, mappings):
    """Remap selected fields of a Redfish document into an output dict.

    Each mapping is ``(pointer, target_key)`` or ``(pointer, target_key, handler)``.
    A handler receives ``(target, key, value)`` and writes into ``target``
    itself, so it can add more than one key.
    """
    target = {}
    for mapping in mappings:
        pointer, key = mapping[0], mapping[1]
        handler = mapping[2] if len(mapping) > 2 else None
        value = resolve_pointer(source, pointer)
        if handler is not None and value is not None:
            handler(target, key, value)
        else:
            target[key] = value
    return target


def _task_messages_handler(target, key, messages):
    target[key] = [
        {
            "MessageId": m.get("MessageId"),
            "Message": m.get("Message"),
            "Severity": m.get("Severity"),
            "Resolution": m.get("Resolution"),
        }
        for m in (messages if isinstance(messages, list) else []) if isinstance(m, dict)
    ]


def task_percentage(doc):
    """Percent complete of a task document as an int, or None.

    Reads the standard ``PercentComplete`` and falls back to the vendor
    ``Oem/<vendor>/TaskPercentage`` string (e.g. ``"45%"``).
    """
    value = doc.get("PercentComplete")
    if value is None:
        oem = doc.get("Oem")
        for vendor in (oem.values() if isinstance(oem, dict) else ()):
            if isinstance(vendor, dict) and vendor.get("TaskPercentage") is not None:
                value = vendor["TaskPercentage"]
                break
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _task_percentage_handler(target, key, doc):
    percent = task_percentage(doc)
    target[key] = None if percent is None else f"{percent}%"


# Redfish async task -> command output
TASK_MAPPINGS = [
    ("/Id", "TaskId"),
    ("/Name", "TaskName"),
    ("/TaskState", "State"),
    ("/StartTime", "StartTime"),
    ("/EndTime", "EndTime"),
    ("/TaskStatus", "TaskStatus"),
    ("/", "TaskPercentage", _task_percentage_handler),
    ("/Messages", "Messages", _task_messages_handler),
]


def print_result(data, json_mode=False, file=sys.stdout):
    """Print a result dict in human-readable or JSON format."""
    if json_mode:
        click.echo(format_json(data), file=file)
    else:
        click.echo(_format_human(data), file=file)


def print_error(message, json_mode=False):
    """Print an error message, respecting --json flag."""
    if json_mode:
        click.echo(format_json(failure_result(message)), err=True)
    else:
        click.echo(f"Error: {message}", err=True)


def print_multi_node_results(results, json_mode=False):
    """Print results from a multi-node operation.

    Args:
        results: list of dicts with keys: node, code, result (an envelope)
        json_mode: output as JSON if True
    """
    if json_mode:
        if len(results) == 1:
            click.echo(format_json(results[0]["result"]))
        else:
            click.echo(format_json(results))
        return

    for result in results:
        node = result.get("node", "unknown")
        if len(results) > 1:
            click.echo(f"\n--- {node} ---")
        envelope = result.get("result", {})
        if envelope.get("State") == STATE_SUCCESS:
            click.echo(_format_human(envelope))
        else:
            for message in envelope.get("Message", []):
                click.echo(message if str(message).startswith("Error") else f"Error: {message}", err=True)


def _format_human(data):
    """Convert an envelope or data dict to human-readable text."""
    if not data:
        return "No data."

    if "State" in data and "Message" in data:
        lines = []
        for message in data["Message"]:
            if isinstance(message, dict):
                lines.append(_format_human(message))
            else:
                lines.append(str(message))
        return "\n".join(lines)

    if "Success" in data:
        return data["Success"].get("Message", "Success")

    # Task output
    if "TaskId" in data and "State" in data:
        return _format_task(data)

    # Firmware inventory
    if "Firmware" in data:
        return _format_firmware(data)

    # Voltage sensors
    if "Voltages" in data:
        return _format_voltages(data)

    # Generic: pretty print key-value pairs
    return _format_generic(data)


def _format_task(data):
    lines = [
        f"  Task: {data.get('TaskId', 'N/A')} ({data.get('TaskName') or 'N/A'})",
        f"  State: {data.get('State', 'N/A')}",
        f"  Status: {data.get('TaskStatus') or 'N/A'}",
        f"  Progress: {data.get('TaskPercentage') or 'N/A'}",
    ]
    for msg in data.get("Messages") or []:
        lines.append(f"  [{msg.get('Severity') or '-'}] {msg.get('Message')}")
    return "\n".join(lines)


def _format_voltages(data):
    lines = []
    for v in data.get("Voltages", []):
        reading = v.get("ReadingVolts")
        reading = "N/A" if reading is None else f"{reading} V"
        low = v.get("LowerThresholdCritical")
        high = v.get("UpperThresholdCritical")
        limits = f"{'-' if low is None else low}..{'-' if high is None else high}"
        lines.append(f"  {v.get('Name') or 'N/A'}: {reading} (critical {limits})")
    return "\n".join(lines) if lines else "No voltage sensors found."


def _format_firmware(data):
    lines = []
    for fw in data.get("Firmware", []):
        name = fw.get("Name") or "N/A"
        version = fw.get("Version") or "N/A"
        fw_type = fw.get("Type") or "-"
        lines.append(f"  {name} [{fw_type}]: {version}")
    return "\n".join(lines) if lines else "No firmware information."


def _format_generic(data):
    """Format arbitrary dict as indented key-value lines."""
    lines = []
    for key, value in data.items():
        if key.startswith("@") or key.startswith("odata"):
            continue
        if isinstance(value, dict):
            lines.append(f"  {key}:")
            for k2, v2 in value.items():
                if not str(k2).startswith("@"):
                    lines.append(f"    {k2}: {v2}")
        elif isinstance(value, list):
            if value and all(isinstance(v, str) for v in value):
                lines.append(f"  {key}:")
                lines.extend(f"    {v}" for v in value)
            else:
                lines.append(f"  {key}: [{len(value)} items]")
        else:
            lines.append(f"  {key}: {value}")
    return "\n".join(lines) if lines else json.dumps(data, indent=2)
