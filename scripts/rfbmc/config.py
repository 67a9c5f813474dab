"""Configuration loading for rfbmc - nodes.json and credentials."""

import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

from rfbmc import CODE_OPTION_ERROR, DEFAULT_PORT

LOG = logging.getLogger(__name__)

NODES_FILE = os.environ.get(
    "RFBMC_NODES_FILE",
    os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.realpath(__file__)))),
        "nodes.json",
    ),
)
CREDENTIALS_FILE = os.path.expanduser("~/.redfish_credentials")
CREDENTIALS_ENV = "REDFISH_AUTH"


@dataclass
class Node:
    hostname: str
    console_ip: str
    port: int = DEFAULT_PORT


def _fail(message):
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(CODE_OPTION_ERROR)


def load_nodes(nodes_file: Optional[str] = None) -> List[Node]:
    """Load all nodes from nodes.json."""
    path = nodes_file or NODES_FILE
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        _fail(f"nodes file not found at {path}")
    except json.JSONDecodeError:
        _fail(f"could not decode JSON from {path}")

    nodes = []
    for entry in data.get("nodes", []):
        nodes.append(Node(
            hostname=entry.get("hostname", ""),
            console_ip=entry.get("console_ip", ""),
            port=int(entry.get("console_port", DEFAULT_PORT)),
        ))
    LOG.debug("Loaded %d nodes from %s", len(nodes), path)
    return nodes


def parse_auth(value: str) -> Optional[Tuple[str, str]]:
    """Parse ``user:password`` (optionally quoted) into a tuple."""
    parts = value.strip().strip('"').split(":", 1)
    if len(parts) == 2 and parts[0]:
        return parts[0], parts[1]
    return None


def load_credentials(credentials_file: Optional[str] = None) -> tuple:
    """Load BMC credentials.

    The REDFISH_AUTH environment variable wins over ~/.redfish_credentials.
    Returns (username, password) tuple.
    """
    env_value = os.environ.get(CREDENTIALS_ENV)
    if env_value:
        creds = parse_auth(env_value)
        if creds:
            return creds
        _fail(f"could not parse {CREDENTIALS_ENV} environment variable")

    path = credentials_file or CREDENTIALS_FILE
    try:
        with open(path) as f:
            content = f.read().strip()
    except FileNotFoundError:
        _fail(f"credentials file not found at {path}, use --username/--password or {CREDENTIALS_ENV}")

    if content.startswith(f"{CREDENTIALS_ENV}="):
        creds = parse_auth(content.split("=", 1)[1])
        if creds:
            return creds

    _fail(f"could not parse {CREDENTIALS_ENV} in {path}")


def resolve_nodes(
    identifiers: List[str],
    all_nodes: List[Node],
) -> List[Node]:
    """Resolve node identifiers to Node objects.

    Matches on hostname or raw IP (console_ip).
    """
    matched = []
    for ident in identifiers:
        ident = ident.strip()
        found = False
        for node in all_nodes:
            if ident in (node.hostname, node.console_ip):
                matched.append(node)
                found = True
                break
        if not found:
            # Treat as raw IP - create a minimal Node
            matched.append(Node(hostname=ident, console_ip=ident))
    return matched
