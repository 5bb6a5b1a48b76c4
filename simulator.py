"""Interactive CLI client — send and verify OTPs against a local gateway.

Run ``python seed.py`` first and paste the printed API key when asked.
"""

import asyncio
import os

import httpx
import uvicorn

from otp_gateway.database.engine import init_db
from otp_gateway.main import app

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

BASE_URL = "http://127.0.0.1:8000"


def _show(body: dict) -> None:
    colour = GREEN if body.get("success") else RED
    print(f"{colour}{BOLD}Gateway:{RESET} {body.get('message')}")
    for key in ("error", "reason", "details", "expiry"):
        if body.get(key):
            print(f"{DIM}  {key}: {body[key]}{RESET}")
    for hint in body.get("hints", []):
        print(f"{DIM}  hint: {hint}{RESET}")
    print()


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔐  OTP Gateway — Console Client")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    api_key = os.environ.get("OTP_GATEWAY_API_KEY") or input(f"{YELLOW}API key: {RESET}").strip()
    recipient = input(f"{YELLOW}Recipient email: {RESET}").strip()
    print(f"{DIM}Commands: 'send', 'switch', 'quit'; anything else is verified as a code{RESET}\n")

    # ── Start the gateway in the background ──────────────
    config = uvicorn.Config(app, host="127.0.0.1", port=8000, log_level="warning")
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve())
    await asyncio.sleep(0.5)

    headers = {"x-api-key": api_key}
    async with httpx.AsyncClient(base_url=BASE_URL, headers=headers, timeout=30.0) as client:
        while True:
            try:
                user_input = input(f"{BLUE}{BOLD}>{RESET} ").strip()
            except (KeyboardInterrupt, EOFError):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue
            command = user_input.lower()

            if command == "quit":
                print(f"{DIM}Goodbye!{RESET}")
                break

            if command == "switch":
                recipient = input(f"{YELLOW}New recipient: {RESET}").strip()
                print(f"{DIM}Switched to {recipient}{RESET}\n")
                continue

            try:
                if command == "send":
                    resp = await client.post("/api/send-otp", json={"recipient": recipient})
                else:
                    resp = await client.post(
                        "/api/verify-otp", json={"recipient": recipient, "otp": user_input}
                    )
            except httpx.HTTPError as exc:
                print(f"{RED}Request failed: {exc}{RESET}\n")
                continue
            _show(resp.json())

    server.should_exit = True
    await server_task


if __name__ == "__main__":
    asyncio.run(main())
