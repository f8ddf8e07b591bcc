"""
Command-line client for the project store REST API.

Examples:
    python client.py issue-token alice
    python client.py --token <token> save project.json --visibility private
    python client.py --token <token> get 1718035200000
    python client.py --token <token> list
"""
import argparse
import json
import sys
from pathlib import Path

from errors import RemoteCallFailed
from managers.config_manager import ConfigManager
from managers.identity_manager import IdentityManager
from store_client import ProjectStoreClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Project store client")
    parser.add_argument("--url", help="Store base URL (default: store_base_url setting or the local server)")
    parser.add_argument("--token", help="Bearer token (default: store_token setting)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    save_parser = subparsers.add_parser("save", help="Save a project record from a JSON file")
    save_parser.add_argument("file", help="JSON file holding the project record")
    save_parser.add_argument("--visibility", choices=["private", "public"], default="private")

    get_parser = subparsers.add_parser("get", help="Fetch a project by id")
    get_parser.add_argument("id")

    subparsers.add_parser("list", help="List all projects")

    token_parser = subparsers.add_parser("issue-token", help="Issue a local bearer token for a user")
    token_parser.add_argument("user_id")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config_manager = ConfigManager()

    if args.command == "issue-token":
        try:
            token = IdentityManager(config_manager.get("tokens_file")).issue_token(args.user_id)
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        print(token)
        return 0

    base_url = args.url or config_manager.get("store_base_url") or (
        f"http://{config_manager.get('host')}:{config_manager.get('port')}"
    )
    client = ProjectStoreClient(
        base_url,
        token=args.token or config_manager.get("store_token"),
        timeout=config_manager.get("request_timeout"),
    )

    try:
        if args.command == "save":
            project = json.loads(Path(args.file).read_text(encoding="utf-8"))
            result = client.save_project(project, visibility=args.visibility)
        elif args.command == "get":
            result = {"project": client.get_project(args.id)}
        else:
            result = {"projects": client.list_projects()}
    except RemoteCallFailed as e:
        print(f"Error: {e}")
        if e.body:
            print(json.dumps(e.body, indent=2))
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error reading project file: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
