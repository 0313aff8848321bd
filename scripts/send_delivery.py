#!/usr/bin/env python3

import argparse
import json
import sys
import uuid
from pathlib import Path

import httpx

from hookrelay.config import settings
from hookrelay.verifier import compute_signature


def build_headers(
    body: bytes, event_type: str, delivery_id: str, secret: str
) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Delivery": delivery_id,
        "X-GitHub-Event": event_type,
    }
    if secret:
        headers["X-Hub-Signature-256"] = compute_signature(body, secret)
    return headers


def send(args: argparse.Namespace, client: httpx.Client) -> httpx.Response:
    body = Path(args.payload).read_bytes()
    delivery_id = args.delivery_id or str(uuid.uuid4())
    headers = build_headers(body, args.event, delivery_id, settings.github_webhook_secret)

    return client.post(
        f"{settings.base_url}/api/webhooks/github", content=body, headers=headers
    )


def show(args: argparse.Namespace, client: httpx.Client) -> httpx.Response:
    headers = {"Authorization": f"Bearer {settings.admin_token}"}
    return client.get(
        f"{settings.base_url}/api/deliveries/{args.delivery_id}", headers=headers
    )


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Send signed test deliveries to the webhook receiver"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="Sign and POST a JSON payload")
    send_parser.add_argument("event", help="Event type, e.g. 'push' or 'pull_request'")
    send_parser.add_argument("payload", help="Path to the JSON payload file")
    send_parser.add_argument(
        "--delivery-id", help="Reuse a delivery id to replay a delivery"
    )

    show_parser = subparsers.add_parser("show", help="Fetch a stored delivery")
    show_parser.add_argument("delivery_id")

    args = parser.parse_args(argv)
    command = send if args.command == "send" else show

    try:
        with httpx.Client(timeout=30.0) as client:
            response = command(args, client)
            response.raise_for_status()

        print(json.dumps(response.json(), indent=2))
    except httpx.HTTPStatusError as e:
        print(
            f"HTTP Error {e.response.status_code}: {e.response.text}", file=sys.stderr
        )
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
