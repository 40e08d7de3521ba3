#!/usr/bin/env python3
"""
Join a session as a headless viewer and follow it until it ends.

Requires a running backend. With --seed the script seeds demo data through
the debug API, schedules a session a few seconds out as the demo admin and
joins it as a guest.

    python scripts/simulate_viewer.py --seed
    python scripts/simulate_viewer.py --session intro-lecture-3f9a1c --name Aiko
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from simulive.client.api import SimuliveClient
from simulive.client.synchronizer import ViewerPhase
from simulive.client.viewer import ViewerSession


class Colors:
    """ANSI color codes for terminal output"""
    OKGREEN = '\033[92m'
    OKCYAN = '\033[96m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'


def print_success(message: str):
    print(f"{Colors.OKGREEN}✅ {message}{Colors.ENDC}")


def print_error(message: str):
    print(f"{Colors.FAIL}❌ {message}{Colors.ENDC}")


def print_info(message: str):
    print(f"{Colors.OKCYAN}ℹ️  {message}{Colors.ENDC}")


async def seed_session(base_url: str, start_in: int) -> str:
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as http:
        seeded = (await http.post("/debug/seed")).json()
        token = (await http.post("/debug/token", json={"user_id": seeded["users"][0]})).json()["access_token"]

        admin = SimuliveClient(base_url, token=token, http=http)
        start = datetime.now(timezone.utc) + timedelta(seconds=start_in)
        session = await admin.create_session(
            {
                "title": "Simulated lecture",
                "video_id": seeded["videos"][0],
                "scheduled_start": start.isoformat(),
                "admin_messages": [
                    {"offset_seconds": 2, "text": "Welcome everyone!"},
                    {"offset_seconds": 10, "text": "Questions go in the chat."},
                ],
            },
        )
        print_success(f"Scheduled session {session['slug']} at {session['scheduled_start']}")
        return session["slug"]


async def run(base_url: str, session_key: Optional[str], name: str, seed: bool, start_in: int, max_ticks: Optional[int]):
    if seed:
        session_key = await seed_session(base_url, start_in)
    if not session_key:
        print_error("Pass --session or --seed")
        return

    async with SimuliveClient(base_url) as api:
        await api.guest_login(session_key, name)
        viewer = ViewerSession(api, session_key)

        sync = await viewer.join()
        sync.on_phase_change = lambda old, new: print_info(f"Phase: {old.value} -> {new.value}")
        print_success(f"Joined {viewer.slug} as {name}")

        try:
            phase = await viewer.run(max_ticks=max_ticks)
        finally:
            await viewer.leave()

        for message in viewer.feed.messages:
            print(f"  [{message.get('type')}] {message.get('sender')}: {message.get('message')}")
        if phase is ViewerPhase.ENDED:
            print_success("Session ended")
        else:
            print_info(f"Stopped in phase {phase.value}")


def main():
    parser = argparse.ArgumentParser(description="Headless Simulive viewer")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--session", help="Session id or public slug")
    parser.add_argument("--name", default="Simulated viewer")
    parser.add_argument("--seed", action="store_true", help="Seed demo data and schedule a session")
    parser.add_argument("--start-in", type=int, default=5, help="Seconds until a seeded session starts")
    parser.add_argument("--max-ticks", type=int, default=None)
    args = parser.parse_args()

    try:
        asyncio.run(run(args.base_url, args.session, args.name, args.seed, args.start_in, args.max_ticks))
    except httpx.ConnectError:
        print_error("Cannot connect to API server!")
        print_info("Start the server with: uvicorn simulive.main:app --reload")


if __name__ == "__main__":
    main()
