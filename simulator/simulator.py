#!/usr/bin/env python3
"""
Event Simulator for Faultline

Sends Sentry-style error events to the ingestion service. A handful of
recurring error shapes carry volatile numbers and ids in their messages
and a custom fingerprint, so the stream collapses into one group per shape.
"""

import asyncio
import json
import os
import random
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx

# Configuration from environment
INGESTION_SERVICE_URL = os.getenv("INGESTION_SERVICE_URL", "http://ingestion_service:8001")
PROJECT_KEY = os.getenv("SIMULATOR_PROJECT_KEY", "")
EVENTS_PER_MINUTE = int(os.getenv("EVENTS_PER_MINUTE", "120"))
USE_ENVELOPES = os.getenv("SIMULATOR_USE_ENVELOPES", "false").lower() == "true"

# Recurring error shapes. "{n}" and "{id}" are filled per event.
ERROR_SHAPES = [
    {
        "platform": "javascript",
        "type": "TypeError",
        "message": "Cannot read properties of undefined (reading 'item{n}')",
        "level": "error",
        "function": "renderCart",
        "filename": "app/cart.js",
        "transaction": "/cart",
    },
    {
        "platform": "python",
        "type": "KeyError",
        "message": "Order {id} not found after {n}ms",
        "level": "error",
        "function": "load_order",
        "filename": "orders/service.py",
        "transaction": "/api/orders/{id}",
    },
    {
        "platform": "python",
        "type": "TimeoutError",
        "message": "Upstream payment gateway timed out after {n} retries",
        "level": "warning",
        "function": "charge",
        "filename": "payments/gateway.py",
        "transaction": "/api/checkout",
    },
    {
        "platform": "node",
        "type": "Error",
        "message": "ECONNREFUSED 10.0.{n}.12:5432",
        "level": "fatal",
        "function": "connect",
        "filename": "db/pool.js",
        "transaction": "worker",
    },
]

ENVIRONMENTS = ["production", "production", "production", "staging"]
RELEASES = ["1.4.0", "1.4.1", "1.5.0"]


def build_payload(shape: dict, rng: Optional[random.Random] = None) -> dict:
    """One Sentry store payload for `shape` with fresh volatile values."""
    rng = rng or random.Random()
    values = {"n": rng.randint(1, 5000), "id": uuid.UUID(int=rng.getrandbits(128)).hex[:12]}
    message = shape["message"].format(**values)

    return {
        "event_id": uuid.UUID(int=rng.getrandbits(128)).hex,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "platform": shape["platform"],
        "level": shape["level"],
        "environment": rng.choice(ENVIRONMENTS),
        "release": rng.choice(RELEASES),
        "server_name": f"web-{rng.randint(1, 4)}",
        "transaction": shape["transaction"].format(**values),
        "message": message,
        # SDK-style custom fingerprint: the volatile message is not part of it
        "fingerprint": [shape["type"], shape["filename"], shape["function"]],
        "exception": {
            "values": [
                {
                    "type": shape["type"],
                    "value": message,
                    "stacktrace": {
                        "frames": [
                            {
                                "filename": shape["filename"],
                                "function": shape["function"],
                                "lineno": 40 + rng.randint(0, 3),
                                "in_app": True,
                            }
                        ]
                    },
                }
            ]
        },
        "user": {"id": f"user-{rng.randint(1, 250)}"},
        "tags": {"simulated": "true"},
        "sdk": {"name": "faultline.simulator", "version": "0.1.0"},
    }


class Simulator:
    def __init__(self, project_key: str, base_url: str = INGESTION_SERVICE_URL):
        self.project_key = project_key
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=30.0)

    async def send(self, payload: dict) -> httpx.Response:
        """POST one payload to the store endpoint (or wrapped in an envelope)."""
        if USE_ENVELOPES:
            body = "\n".join([
                json.dumps({"event_id": payload["event_id"]}),
                json.dumps({"type": "event"}),
                json.dumps(payload),
            ])
            return await self.client.post(
                f"{self.base_url}/api/{self.project_key}/envelope/",
                content=body.encode(),
                headers={"Content-Type": "application/x-sentry-envelope"},
            )
        return await self.client.post(
            f"{self.base_url}/api/{self.project_key}/store/",
            json=payload,
        )

    async def run(self):
        """Main simulation loop."""
        print(f"\n📡 Starting event simulation ({EVENTS_PER_MINUTE} events/min)...")
        print("   Press Ctrl+C to stop\n")

        delay = 60.0 / EVENTS_PER_MINUTE
        event_count = 0
        while True:
            try:
                shape = random.choice(ERROR_SHAPES)
                response = await self.send(build_payload(shape))
                event_count += 1

                if response.status_code == 200:
                    print(f"❌ [{event_count}] {shape['platform']:<12} | {shape['type']:<14} | {shape['level']}")
                else:
                    print(f"⚠️  Failed to send event: {response.status_code} {response.text}")

                await asyncio.sleep(max(0.0, delay + random.uniform(-0.2, 0.2)))

            except asyncio.CancelledError:
                break
            except httpx.HTTPError as e:
                print(f"❌ Error: {e}")
                await asyncio.sleep(5)

        print(f"\n👋 Simulator stopped. Sent {event_count} events.")

    async def close(self):
        await self.client.aclose()


async def main():
    print("=" * 60)
    print("   FAULTLINE EVENT SIMULATOR")
    print("=" * 60)

    if not PROJECT_KEY:
        print("❌ SIMULATOR_PROJECT_KEY is not set (project id or public key)")
        return

    print("\n⏳ Waiting for services to be ready...")
    await asyncio.sleep(5)

    simulator = Simulator(PROJECT_KEY)
    try:
        await simulator.run()
    except KeyboardInterrupt:
        print("\n\n🛑 Shutting down...")
    finally:
        await simulator.close()


if __name__ == "__main__":
    asyncio.run(main())
