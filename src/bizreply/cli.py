"""Operator CLI: run the service and exercise a running webhook endpoint."""

from __future__ import annotations

import argparse
import json
import time
from uuid import uuid4

import httpx


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="BizReply relay utilities.")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the relay service (default: %(default)s).",
    )
    parser.add_argument("--timeout", type=float, default=15.0)
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the relay API with uvicorn.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    verify = sub.add_parser("verify", help="Perform the webhook subscription handshake.")
    verify.add_argument(
        "--channel", choices=["whatsapp", "messenger", "instagram"], default="whatsapp"
    )
    verify.add_argument("--verify-token", required=True)

    simulate = sub.add_parser("simulate", help="Post a WhatsApp text message webhook.")
    simulate.add_argument("--phone-number-id", required=True)
    simulate.add_argument("--sender", default="15550001111")
    simulate.add_argument("--name", default="CLI Customer")
    simulate.add_argument("--text", required=True)

    return parser


def whatsapp_text_payload(phone_number_id: str, sender: str, name: str, text: str) -> dict:
    """Build a webhook body shaped like a WhatsApp Cloud API text message."""

    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "cli",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": phone_number_id},
                            "contacts": [{"wa_id": sender, "profile": {"name": name}}],
                            "messages": [
                                {
                                    "from": sender,
                                    "id": f"wamid.cli-{uuid4().hex}",
                                    "timestamp": str(int(time.time())),
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("bizreply.api.app:create_app", factory=True, host=args.host, port=args.port)
        return 0

    with httpx.Client(base_url=args.base_url, timeout=args.timeout) as client:
        if args.command == "verify":
            challenge = uuid4().hex
            response = client.get(
                f"/webhook/{args.channel}",
                params={
                    "hub.mode": "subscribe",
                    "hub.verify_token": args.verify_token,
                    "hub.challenge": challenge,
                },
            )
            if response.status_code != 200 or response.text != challenge:
                print(f"verification failed: {response.status_code} {response.text}")
                return 1
            print("verification succeeded")
        elif args.command == "simulate":
            payload = whatsapp_text_payload(
                args.phone_number_id, args.sender, args.name, args.text
            )
            response = client.post("/webhook/whatsapp", json=payload)
            response.raise_for_status()
            print(json.dumps(response.json(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
