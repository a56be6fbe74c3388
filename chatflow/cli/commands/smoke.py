"""Post-deploy smoke checks over HTTP."""
from __future__ import annotations

from argparse import Namespace, _SubParsersAction
from typing import Callable, List, Optional, Tuple

import httpx

__all__ = ["register", "run", "run_checks"]

Check = Tuple[str, str, Optional[Callable[[httpx.Response], Optional[str]]]]


def _expect_json_key(key: str):
    def check(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return "response is not JSON"
        return None if key in body else f"missing '{key}'"
    return check


def _expect_javascript(response: httpx.Response) -> Optional[str]:
    if "javascript" not in response.headers.get("content-type", ""):
        return f"unexpected content-type {response.headers.get('content-type')}"
    return None


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("smoke", help="Check a deployed backend (and frontend)")
    parser.add_argument("--base-url", required=True, help="Backend origin, e.g. https://api.example.com")
    parser.add_argument("--frontend-url", help="Frontend origin to check as well")
    parser.add_argument("--timeout", type=float, default=10.0)
    parser.set_defaults(handler=run)


def run_checks(client: httpx.Client, base_url: str, frontend_url: Optional[str] = None) -> List[Tuple[str, bool, str]]:
    """Run each check; returns (name, ok, detail) rows."""
    base = base_url.rstrip("/")
    checks: List[Check] = [
        ("debug", f"{base}/api/debug", _expect_json_key("status")),
        ("version", f"{base}/api/version", _expect_json_key("version")),
        ("cache buster", f"{base}/nuclear-cache-buster", _expect_javascript),
    ]
    if frontend_url:
        checks.append(("frontend", f"{frontend_url.rstrip('/')}/", None))

    results = []
    for name, url, validate in checks:
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            results.append((name, False, f"{url}: {e}"))
            continue
        if response.status_code != 200:
            results.append((name, False, f"{url}: HTTP {response.status_code}"))
            continue
        problem = validate(response) if validate else None
        results.append((name, problem is None, f"{url}: {problem or 'OK'}"))
    return results


def run(args: Namespace) -> int:
    with httpx.Client(timeout=args.timeout, follow_redirects=True) as client:
        results = run_checks(client, args.base_url, args.frontend_url)

    for name, ok, detail in results:
        print(f"[{'PASS' if ok else 'FAIL'}] {name} - {detail}")

    failed = sum(1 for _, ok, _ in results if not ok)
    print(f"{len(results) - failed}/{len(results)} checks passed")
    return 1 if failed else 0
