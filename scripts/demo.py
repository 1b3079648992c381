#!/usr/bin/env python3
"""Demo: run one event campaign through the gateway and watch it finish.

Requires the gateway and a dispatch worker to be running:
    python -m api_gateway
    celery -A dispatch_worker.celery worker -Q campaigns,maintenance,provider_reloads

Usage:
    python scripts/demo.py [--gateway-url URL] [--event-id ID]
"""

import argparse
import sys
import time

import httpx

CAMPAIGN = {
    "email": {
        "subject": "Your ticket for {{ event_id }}",
        "body": "<p>Hi {{ first_name }}, show this code at the door: {{ qr_token }}</p>",
        "generate_qr": True,
    },
    "sms": {
        "body": "{{ first_name }}, your check-in PIN is {{ pin_code }}",
        "generate_pin": True,
    },
    "recipients": [
        {"user_id": "alice", "first_name": "Alice", "email": "alice@example.com"},
        {
            "user_id": "bob",
            "first_name": "Bob",
            "phone": "+33612345678",
            "preferred_method": "sms",
        },
        {
            "user_id": "carol",
            "first_name": "Carol",
            "email": "carol@example.com",
            "phone": "+33687654321",
            "preferred_method": "both",
        },
    ],
}

POLL_SECONDS = 1.0
POLL_ATTEMPTS = 30


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a demo campaign")
    parser.add_argument(
        "--gateway-url",
        default="http://localhost:8000",
        help="API gateway base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--event-id", default="demo-event")
    args = parser.parse_args()

    with httpx.Client(base_url=args.gateway_url, timeout=10.0) as client:
        try:
            resp = client.get("/health")
        except httpx.ConnectError:
            print(f"Cannot connect to {args.gateway_url}")
            print("Make sure the gateway is running: python -m api_gateway")
            sys.exit(1)

        if resp.status_code != 200:
            print(f"Gateway unhealthy: {resp.text}")
            sys.exit(1)

        print(f"Gateway healthy at {args.gateway_url}\n")

        for channel in ("email", "sms"):
            providers = client.get(f"/providers/{channel}").json()["providers"]
            names = ", ".join(f"{p['type']}(p{p['priority']})" for p in providers) or "none"
            print(f"  {channel:5s} providers: {names}")

        resp = client.post(f"/events/{args.event_id}/campaigns", json=CAMPAIGN)
        if resp.status_code != 202:
            print(f"\nCampaign rejected {resp.status_code}: {resp.json()}")
            sys.exit(1)

        campaign_id = resp.json()["campaign_id"]
        print(f"\nCampaign accepted  campaign_id={campaign_id}")

        for _ in range(POLL_ATTEMPTS):
            status = client.get(f"/events/{args.event_id}/campaigns/{campaign_id}").json()
            if status["status"] in ("completed", "failed"):
                break
            time.sleep(POLL_SECONDS)
        else:
            print("Campaign still running; is a dispatch worker consuming 'campaigns'?")
            sys.exit(1)

    print(f"Campaign {status['status']}: {status['stats']}")


if __name__ == "__main__":
    main()
