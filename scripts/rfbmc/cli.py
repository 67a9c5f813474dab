"""Main Click CLI app for rfbmc."""

import logging
import sys

import click

from rfbmc import CODE_INTERNAL, CODE_OK, CODE_OPTION_ERROR, DEFAULT_PORT, __version__
from rfbmc.config import Node, load_nodes, load_credentials, resolve_nodes
from rfbmc.client import BMCClient, BMCError
from rfbmc.output import failure_result, print_error, print_multi_node_results, print_result, success_result

LOG = logging.getLogger(__name__)


def configure_logging(verbose=False, debug=False):
    """Log to stderr: WARNING by default, INFO with --verbose, DEBUG with --debug."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stderr,
    )


class NodeContext:
    """Holds connection options, resolved nodes, credentials, and global flags."""

    def __init__(self):
        self.host = None
        self.port = DEFAULT_PORT
        self.node_names = ()
        self.node_csv = None
        self.all_nodes = False
        self.nodes = []
        self.username = ""
        self.password = ""
        self.json_mode = False
        self.verbose = False

    def resolve(self):
        """Resolve target nodes and credentials. Exits on missing targets."""
        if self.host:
            self.nodes = [Node(hostname=self.host, console_ip=self.host, port=self.port)]
        elif self.all_nodes:
            self.nodes = load_nodes()
        elif self.node_csv:
            identifiers = [n.strip() for n in self.node_csv.split(",")]
            self.nodes = resolve_nodes(identifiers, load_nodes())
        elif self.node_names:
            self.nodes = resolve_nodes(list(self.node_names), load_nodes())

        if not self.nodes:
            print_error("No target specified. Use --host, --node, --nodes, or --all.", self.json_mode)
            sys.exit(CODE_OPTION_ERROR)

        if not (self.username and self.password):
            self.username, self.password = load_credentials()

    def get_client(self, node):
        """Create a BMCClient for a given node."""
        return BMCClient(
            node.console_ip,
            self.username,
            self.password,
            port=node.port,
        )


pass_context = click.make_pass_decorator(NodeContext, ensure=True)


@click.group()
@click.option("--host", "-H", default=None, help="BMC address to target.")
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, show_default=True, help="BMC HTTPS port.")
@click.option("--username", "-U", default=None, help="BMC user name.")
@click.option("--password", "-P", default=None, help="BMC user password.")
@click.option("--node", "-n", "node_names", multiple=True, help="Node hostname(s) from nodes.json to target.")
@click.option("--nodes", "node_csv", default=None, help="Comma-separated list of node hostnames or IPs.")
@click.option("--all", "all_nodes", is_flag=True, help="Target all nodes from nodes.json.")
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format.")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--debug", is_flag=True, help="Debug logging.")
@click.version_option(version=__version__, prog_name="rfbmc")
@click.pass_context
def cli(ctx, host, port, username, password, node_names, node_csv, all_nodes, json_mode, verbose, debug):
    """rfbmc - Redfish BMC Management CLI"""
    configure_logging(verbose, debug)

    nctx = NodeContext()
    nctx.host = host
    nctx.port = port
    nctx.username = username or ""
    nctx.password = password or ""
    nctx.node_names = node_names
    nctx.node_csv = node_csv
    nctx.all_nodes = all_nodes
    nctx.json_mode = json_mode
    nctx.verbose = verbose

    ctx.obj = nctx


def run_on_nodes(nctx, operation, label=None):
    """Run an operation on all targeted nodes, one after another.

    Args:
        nctx: NodeContext with nodes, credentials, flags
        operation: callable(client, node) -> dict (the result data)
        label: optional label for the operation (used in verbose mode)

    Returns:
        list of result dicts, one per node; exits with the first failing
        node's code when any node failed
    """
    nctx.resolve()

    results = []
    exit_code = CODE_OK

    for node in nctx.nodes:
        if nctx.verbose and not nctx.json_mode:
            action_label = label or "operation"
            click.echo(f"[{node.hostname}] Running {action_label}...")

        try:
            client = nctx.get_client(node)
            data = operation(client, node)
            results.append({
                "node": node.hostname,
                "code": CODE_OK,
                "result": success_result(data),
            })
        except BMCError as e:
            LOG.debug("%s failed on %s", label or "operation", node.hostname, exc_info=True)
            exit_code = exit_code or e.code
            results.append({
                "node": node.hostname,
                "code": e.code,
                "result": failure_result(getattr(e, "messages", None) or [str(e)]),
            })
        except Exception as e:
            LOG.exception("Unexpected error running %s on %s", label or "operation", node.hostname)
            exit_code = exit_code or CODE_INTERNAL
            results.append({
                "node": node.hostname,
                "code": CODE_INTERNAL,
                "result": failure_result(f"Unexpected error: {e}"),
            })

    print_multi_node_results(results, json_mode=nctx.json_mode)

    if exit_code != CODE_OK:
        sys.exit(exit_code)

    return results


def _walk_commands(group, prefix=""):
    names = []
    for name in sorted(group.commands):
        command = group.commands[name]
        path = f"{prefix}{name}"
        if isinstance(command, click.Group):
            names.extend(_walk_commands(command, f"{path} "))
        else:
            names.append(path)
    return names


@cli.command()
@pass_context
def capabilities(nctx):
    """List all available commands."""
    print_result(success_result({"Commands": _walk_commands(cli)}), json_mode=nctx.json_mode)


# Import and register command groups
from rfbmc.commands.firmware import firmware
from rfbmc.commands.bmc import bmc
from rfbmc.commands.task import task
from rfbmc.commands.sensors import sensors

cli.add_command(firmware)
cli.add_command(bmc)
cli.add_command(task)
cli.add_command(sensors)
