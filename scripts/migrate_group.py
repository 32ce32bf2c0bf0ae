#!/usr/bin/env python3
"""Drive the three-phase migration of one local group against a PrincipalSync server."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


class HttpClient:
    def __init__(self, base_url: str, api_key: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {"Accept": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"

    def request_json(
        self,
        method: str,
        path: str,
        query: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        if query:
            query = {k: v for k, v in query.items() if v is not None}
            if query:
                url = f"{url}?{urlencode(query)}"

        req = Request(url, data=b"" if method == "POST" else None, method=method)
        for key, value in self.headers.items():
            req.add_header(key, value)

        try:
            with urlopen(req, timeout=timeout) as response:
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"{method} {url} failed: {exc.code} {exc.reason}: {detail}") from None

        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("group_path", help="Path of the local group, e.g. /home/groups/m/marketing")
    parser.add_argument("--idp", default=_env("PRINCIPALSYNC_IDP_NAME", "saml-idp"))
    parser.add_argument(
        "--user",
        action="append",
        dest="users",
        default=None,
        help="User to run phase 2 for; repeatable. Defaults to the pending users of the group.",
    )
    parser.add_argument(
        "--skip-strip",
        action="store_true",
        help="Stop after phase 2 and keep direct user memberships",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    base_url = _env("PRINCIPALSYNC_URL", "http://localhost:8080")
    api_key = _env("PRINCIPALSYNC_API_KEY")

    client = HttpClient(base_url, api_key=api_key)

    print("Checking health...")
    health = client.request_json("GET", "/health")
    if health.get("status") != "healthy":
        raise RuntimeError(f"Unexpected health response: {health}")

    print(f"Phase 1: linking external group for {args.group_path}...")
    step1 = client.request_json(
        "POST", "/migration-step1", query={"groupPath": args.group_path, "idpName": args.idp}
    )
    print(f"  {step1.get('message')}")

    users = args.users
    if users is None:
        state = client.request_json(
            "GET", "/migration-state", query={"groupPath": args.group_path, "idpName": args.idp}
        )
        users = state.get("usersPendingDynamicMembership", [])

    print(f"Phase 2: granting dynamic membership to {len(users)} users...")
    for user_id in users:
        step2 = client.request_json(
            "POST", "/migration-step2", query={"userId": user_id, "idpName": args.idp}
        )
        print(f"  {user_id}: +{step2.get('principalsAdded', 0)} principals")

    state = client.request_json(
        "GET", "/migration-state", query={"groupPath": args.group_path, "idpName": args.idp}
    )
    pending = state.get("usersPendingDynamicMembership", [])
    if pending:
        raise RuntimeError(f"Users still pending dynamic membership: {pending}")

    if args.skip_strip:
        print("Skipping phase 3 as requested.")
        return 0

    print("Phase 3: removing direct user members...")
    step3 = client.request_json("POST", "/migration-step3", query={"groupPath": args.group_path})
    print(f"  {step3.get('message')}")

    print(f"Migration of {args.group_path} complete.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise
