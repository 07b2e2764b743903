import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class NodeFactoryClient:
    """
    HTTP client for a running node factory server.

    Responsible ONLY for transport.
    Does NOT perform validation, the server does.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout_seconds: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    # ============================================================
    # TRANSPORT
    # ============================================================

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("[CLIENT] %s %s", method, url)

        response = self.session.request(
            method,
            url,
            json=payload,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()

        try:
            return response.json()
        except ValueError:
            raise RuntimeError(
                f"Server did not return valid JSON. "
                f"Response text: {response.text}"
            )

    # ============================================================
    # READS
    # ============================================================

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def tree(self) -> Dict[str, Any]:
        return self._request("GET", "/tree")

    def get_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._request("GET", f"/nodes/{node_id}")
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return None
            raise

    def all_nodes(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/nodes")

    # ============================================================
    # MUTATIONS
    # ============================================================

    def upsert_nodes(self, nodes: List[Dict[str, Any]], summary: Any = None) -> List[Dict[str, Any]]:
        data = self._request("POST", "/nodes", {"nodes": nodes, "summary": summary})
        return data["nodes"]

    def delete_nodes(self, nodes: List[Dict[str, Any]], summary: Any = None) -> List[Dict[str, Any]]:
        data = self._request("POST", "/nodes/delete", {"nodes": nodes, "summary": summary})
        return data["nodes"]

    def composite_action(self, actions: List[Dict[str, Any]], summary: Any = None) -> List[Dict[str, Any]]:
        data = self._request("POST", "/composite", {"actions": actions, "summary": summary})
        return data["nodes"]


# ============================================================
# COMMAND LINE
# ============================================================

def _parse_nodes(raw: str) -> List[Dict[str, Any]]:
    data = json.loads(raw)
    return data if isinstance(data, list) else [data]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodefactory-client",
        description="Inspect and edit a running node factory server.",
    )
    parser.add_argument("--url", default="http://localhost:3000", help="Server base URL")
    parser.add_argument("--timeout", type=int, default=10, help="Request timeout in seconds")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("tree", help="Print the fully expanded tree")
    commands.add_parser("dump", help="Print every stored node (non-production only)")

    get = commands.add_parser("get", help="Print one expanded node")
    get.add_argument("id")

    upsert = commands.add_parser("upsert", help="Upsert a JSON node or list of nodes")
    upsert.add_argument("nodes")

    delete = commands.add_parser("delete", help="Delete a JSON node or list of nodes")
    delete.add_argument("nodes")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    client = NodeFactoryClient(args.url, timeout_seconds=args.timeout)

    if args.command == "tree":
        result = client.tree()
    elif args.command == "dump":
        result = client.all_nodes()
    elif args.command == "get":
        result = client.get_node(args.id)
    elif args.command == "upsert":
        result = client.upsert_nodes(_parse_nodes(args.nodes))
    else:
        result = client.delete_nodes(_parse_nodes(args.nodes))

    if result is None:
        print(f"No node with id {args.id}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
