"""Post a sample UAZAPI message event to a running ingestion service.

Usage:
    uv run python scripts/send_sample_webhook.py <instance_name> <phone> [--shape direct|nested|batched]
        [--url http://localhost:8000/webhooks/uazapi] [--text "Olá"] [--from-me]

Requires:
    - a running service (uvicorn wacrm.api.app:app)
    - <instance_name> registered as a connected instance in the database

This script is for local/staging validation only.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
import uuid

import requests

DEFAULT_URL = "http://localhost:8000/webhooks/uazapi"


def build_event(instance_name: str, phone: str, text: str, from_me: bool) -> dict:
    jid = f"{phone}@s.whatsapp.net"
    message = {
        "id": f"SAMPLE{uuid.uuid4().hex[:16].upper()}",
        "messageType": "conversation",
        "text": text,
        "fromMe": from_me,
        "messageTimestamp": int(time.time() * 1000),
    }
    if from_me:
        message.update({"chatid": jid, "deviceSent": True, "wasSentByApi": False})
    else:
        message.update({"sender": jid, "senderName": "Cliente Teste"})

    return {
        "EventType": "messages",
        "instanceName": instance_name,
        "message": message,
        "chat": {"wa_chatid": jid, "phone": phone},
    }


def wrap(event: dict, shape: str) -> object:
    if shape == "nested":
        return {"body": event}
    if shape == "batched":
        return [{"body": event, "headers": {"content-type": "application/json"}}]
    return event


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a sample UAZAPI webhook")
    parser.add_argument("instance_name")
    parser.add_argument("phone", help="digits only, e.g. 5511988887777")
    parser.add_argument("--shape", choices=("direct", "nested", "batched"), default="direct")
    parser.add_argument("--url", default=DEFAULT_URL)
    parser.add_argument("--text", default="Olá, mensagem de teste")
    parser.add_argument("--from-me", action="store_true", help="send as an outbound message")
    parser.add_argument("--repeat", type=int, default=1, help="redeliver the same event N times")
    args = parser.parse_args()

    event = build_event(args.instance_name, args.phone, args.text, args.from_me)
    body = wrap(event, args.shape)

    for attempt in range(1, args.repeat + 1):
        try:
            response = requests.post(args.url, json=body, timeout=30)
        except requests.RequestException as exc:
            print(f"ERROR: request failed: {exc}")
            sys.exit(1)

        print(f"[{attempt}] HTTP {response.status_code} "
              f"correlation={response.headers.get('X-Correlation-ID', '-')}")
        try:
            print(json.dumps(response.json(), indent=2, ensure_ascii=False))
        except ValueError:
            print(response.text)


if __name__ == "__main__":
    main()
