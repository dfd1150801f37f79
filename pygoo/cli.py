"""
pygoo - gcloud-style Command Line Interface

Read-only inspection commands over the pygoo managers.

Usage:
    pygoo vms us-central1-a --project=my-project
    pygoo vm my-vm --zone=us-central1-a --format=json
    pygoo latest-snapshot db-backup
    pygoo cpu my-vm
    pygoo topics
    pygoo files my-bucket logs/2024/
    pygoo acl my-db --exclude=tmp
"""

import argparse
import json
import subprocess
import sys
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from pygoo.core.config import VERSION, AppContext, load_config_file
from pygoo.core.exceptions import PyGooError
from pygoo.main import PyGoo, new
from pygoo.utils.logger import setup_logging

Output = Union[Dict[str, Any], List[Dict[str, Any]], List[str], str, float]


class OutputFormatter:
    """
    Handle output formatting similar to gcloud.

    Supports: json, yaml, table
    """

    @staticmethod
    def format_output(data: Output, format_type: str = 'table',
                      columns: Optional[Sequence[str]] = None) -> str:
        """Format output based on format type."""
        if format_type == 'json':
            return json.dumps(data, indent=2, default=str)
        elif format_type == 'yaml':
            return yaml.safe_dump(data, default_flow_style=False)
        elif format_type == 'table':
            if isinstance(data, dict):
                return OutputFormatter._format_record(data)
            if isinstance(data, list):
                return OutputFormatter._format_rows(data, columns or ['name'])
            return str(data)
        else:
            return str(data)

    @staticmethod
    def _format_record(data: Dict[str, Any]) -> str:
        """Format one record as a key/value box."""
        lines = []
        lines.append("┌─" + "─" * 50 + "─┐")
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, default=str)
            lines.append(f"│ {key:20} │ {str(value):27} │")
        lines.append("└─" + "─" * 50 + "─┘")
        return "\n".join(lines)

    @staticmethod
    def _format_rows(rows: List[Any], columns: Sequence[str]) -> str:
        """Format a list as a gcloud-like table with upper-case headers."""
        if rows and not isinstance(rows[0], dict):
            rows = [{columns[0]: row} for row in rows]

        table = [[str(row.get(column, '')) for column in columns] for row in rows]
        widths = [
            max([len(column)] + [len(cells[i]) for cells in table])
            for i, column in enumerate(columns)
        ]

        lines = ["  ".join(column.upper().ljust(widths[i]) for i, column in enumerate(columns))]
        for cells in table:
            lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)))
        return "\n".join(line.rstrip() for line in lines)


def get_gcloud_config(key: str) -> Optional[str]:
    """
    Read configuration from gcloud config.

    Args:
        key: Config key (e.g., 'core/project', 'compute/zone')

    Returns:
        Config value or None
    """
    try:
        result = subprocess.run(
            ['gcloud', 'config', 'get-value', key],
            capture_output=True,
            text=True,
            timeout=5
        )
        value = result.stdout.strip()
        return value if value and value != '(unset)' else None
    except (subprocess.SubprocessError, FileNotFoundError):
        # gcloud not available or error
        return None


def create_parser() -> argparse.ArgumentParser:
    """
    Create argument parser with gcloud-compatible structure.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog='pygoo',
        description='Inspect Google Cloud resources through pygoo',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES
    To list the VMs of a zone:
        $ pygoo vms us-central1-a --project=my-project

    To show a VM as JSON:
        $ pygoo vm my-vm --zone=us-central1-a --format=json

    To use a service account config file:
        $ pygoo --config=~/.pygoo/config.yaml topics

NOTES
    The config file (json or yaml) holds service_account, project_id and
    key_file. Without it, Application Default Credentials are used.
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'pygoo v{VERSION}'
    )
    _add_global_args(parser)

    subparsers = parser.add_subparsers(
        dest='command',
        required=True,
        help='Available commands'
    )

    vms_parser = subparsers.add_parser('vms', help='List the VMs of a zone')
    vms_parser.add_argument('zone', metavar='ZONE', help='Zone, e.g. us-central1-a')

    vm_parser = subparsers.add_parser('vm', help='Describe a VM')
    vm_parser.add_argument('instance_name', metavar='INSTANCE_NAME', help='Name of the VM')
    vm_parser.add_argument('--zone', metavar='ZONE', required=True, help='Zone of the VM')

    snapshot_parser = subparsers.add_parser(
        'latest-snapshot', help='Show the latest snapshot whose name contains PREFIX'
    )
    snapshot_parser.add_argument('prefix', metavar='PREFIX', help='Snapshot name prefix')

    cpu_parser = subparsers.add_parser(
        'cpu', help='Show the average CPU utilization of the last 3 minutes'
    )
    cpu_parser.add_argument('instance_name', metavar='INSTANCE_NAME', help='Name of the VM')

    subparsers.add_parser('topics', help='List Pub/Sub topics')

    files_parser = subparsers.add_parser('files', help='List the files under a bucket path')
    files_parser.add_argument('bucket', metavar='BUCKET', help='Bucket name')
    files_parser.add_argument('path', metavar='PATH', help='Object name prefix')

    acl_parser = subparsers.add_parser(
        'acl', help='List the authorized networks of a Cloud SQL instance'
    )
    acl_parser.add_argument('db', metavar='DB', help='Cloud SQL instance name')
    acl_parser.add_argument(
        '--exclude',
        metavar='TEXT',
        help='Hide entries whose name contains TEXT.'
    )

    return parser


def _add_global_args(parser: argparse.ArgumentParser):
    """Add arguments common to all commands (gcloud style)."""

    parser.add_argument(
        '--config',
        metavar='FILE',
        help='Config file (json or yaml) with service_account, project_id and key_file.'
    )
    parser.add_argument(
        '--project',
        metavar='PROJECT',
        help='GCP project ID. Defaults to the config file, then gcloud config project.'
    )

    output = parser.add_argument_group('OUTPUT FLAGS')
    output.add_argument(
        '--format',
        metavar='FORMAT',
        choices=['json', 'yaml', 'table'],
        default='table',
        help='Output format. One of: json, yaml, table. Default: table'
    )
    output.add_argument(
        '--verbosity',
        metavar='VERBOSITY',
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default='warning',
        help='Logging verbosity. One of: debug, info, warning, error, critical. Default: warning'
    )
    output.add_argument(
        '--log-file',
        metavar='LOG_FILE',
        help='Write logs to this file.'
    )


def build_context(args: argparse.Namespace) -> AppContext:
    """Build the AppContext from --config and --project."""
    ctx = load_config_file(args.config).to_app_context() if args.config else AppContext()

    if args.project:
        ctx.project_id = args.project
    elif not ctx.project_id:
        ctx.project_id = get_gcloud_config('core/project')

    return ctx


def run_command(goo: PyGoo, args: argparse.Namespace) -> Output:
    """Run the selected command and return its result."""
    project = goo.project_id

    if args.command == 'vms':
        return goo.gce.list_vms(project, args.zone)
    elif args.command == 'vm':
        vm = goo.gce.get_vm(project, args.zone, args.instance_name)
        return {
            'name': vm.get('name'),
            'status': vm.get('status'),
            'machineType': vm.get('machineType', '').rsplit('/', 1)[-1],
            'natIP': goo.gce.get_nat_ip(vm),
            'networkIP': goo.gce.get_network_ip(vm),
            'tags': vm.get('tags', {}).get('items', []),
        }
    elif args.command == 'latest-snapshot':
        snapshots = goo.gce.get_snapshots(project)
        return goo.gce.get_latest_snapshot(args.prefix, snapshots)
    elif args.command == 'cpu':
        return {
            'instanceName': args.instance_name,
            'cpuUtilization': goo.monitor.get_avg_cpu_utilization(project, args.instance_name),
        }
    elif args.command == 'topics':
        return goo.pubsub.list_topics(project)
    elif args.command == 'files':
        return goo.storage.list_files_under_path(args.bucket, args.path)
    elif args.command == 'acl':
        exclude = args.exclude
        return goo.cloud_sql.get_filtered_acl_entries_of_database(
            project, args.db, lambda name: not exclude or exclude not in name
        )
    raise PyGooError(f"Unknown command: {args.command}")


# Table columns of the list commands
COLUMNS = {
    'vms': ['name', 'status'],
    'files': ['name', 'size', 'updated'],
    'acl': ['name', 'value'],
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (gcloud-compatible)."""

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.verbosity.upper(), log_file=args.log_file)

    try:
        goo = new(build_context(args))
        result = run_command(goo, args)
        print(OutputFormatter.format_output(result, args.format, COLUMNS.get(args.command)))
        return 0

    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user.", file=sys.stderr)
        return 130  # Standard exit code for SIGINT
    except PyGooError as e:
        print(f"ERROR: (pygoo) {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
