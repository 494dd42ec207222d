#!/usr/bin/env python3
"""Local stand-in for the Supabase ``/auth/v1/user`` endpoint.

Bearer tokens resolve to user ids either through ``--token TOKEN=USER_ID``
pairs or the ``dev-<user id>`` convention. Roles are not served here; the
marketplace reads them from its own users table.
"""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

DEV_TOKEN_PREFIX = "dev-"


def _user_payload_for_token(token: str, tokens: dict[str, str]) -> dict[str, object] | None:
    user_id = tokens.get(token)
    if user_id is None and token.startswith(DEV_TOKEN_PREFIX):
        user_id = token.removeprefix(DEV_TOKEN_PREFIX)
    if not user_id:
        return None
    return {"id": user_id, "aud": "authenticated", "app_metadata": {}, "user_metadata": {}}


def _parse_token_pairs(pairs: list[str]) -> dict[str, str]:
    tokens: dict[str, str] = {}
    for pair in pairs:
        token, separator, user_id = pair.partition("=")
        if not separator or not token or not user_id:
            raise argparse.ArgumentTypeError(f"expected TOKEN=USER_ID, got {pair!r}")
        tokens[token] = user_id
    return tokens


def build_handler(tokens: dict[str, str]) -> type[BaseHTTPRequestHandler]:
    class MockIdentityHandler(BaseHTTPRequestHandler):
        server_version = "MockIdentity/1.0"

        def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
            if self.path == "/healthz":
                self._write_json(HTTPStatus.OK, {"status": "ok"})
                return

            if self.path != "/auth/v1/user":
                self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
                return

            authorization = self.headers.get("Authorization", "")
            if not authorization.lower().startswith("bearer "):
                self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "missing bearer token"})
                return

            token = authorization.split(" ", maxsplit=1)[1].strip()
            user = _user_payload_for_token(token, tokens)
            if user is None:
                self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
                return

            self._write_json(HTTPStatus.OK, user)

        def log_message(self, _: str, *args: object) -> None:
            if args:
                print("mock-identity:", *args, flush=True)

        def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
            raw = json.dumps(payload).encode("utf-8")
            self.send_response(status.value)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

    return MockIdentityHandler


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth /auth/v1/user endpoint for local runs.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument(
        "--token",
        action="append",
        default=[],
        metavar="TOKEN=USER_ID",
        help="Map a bearer token to a marketplace user id (repeatable)",
    )
    args = parser.parse_args()
    try:
        tokens = _parse_token_pairs(args.token)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    server = ThreadingHTTPServer((args.host, args.port), build_handler(tokens))
    print(f"mock-identity listening on http://{args.host}:{server.server_address[1]}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
