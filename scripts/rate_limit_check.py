"""
Rate limit smoke check against a running producer.

Sends RATE_LIMIT_REQUESTS + 10 sequential GET /api/templates calls.
Expected: the first RATE_LIMIT_REQUESTS succeed, the rest return 429.

Usage:
    python scripts/rate_limit_check.py [base_url]
"""
import asyncio
import sys
import time

import httpx

from notifyhub.config import settings

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
LIMIT = settings.RATE_LIMIT_REQUESTS
NUM_REQUESTS = LIMIT + 10


async def send_request(client: httpx.AsyncClient, request_num: int) -> tuple[int | None, str | None]:
    start = time.time()
    try:
        response = await client.get(f"{BASE_URL}/api/templates")
    except httpx.HTTPError as e:
        print(f"Request {request_num:3d}: EXCEPTION ({time.time() - start:.3f}s) - {e}")
        return None, None

    duration = time.time() - start
    retry_after = response.headers.get("Retry-After")
    if response.status_code == 200:
        remaining = response.headers.get("X-RateLimit-Remaining")
        print(f"Request {request_num:3d}: OK ({duration:.3f}s) remaining={remaining}")
    elif response.status_code == 429:
        print(f"Request {request_num:3d}: RATE LIMITED ({duration:.3f}s) retry_after={retry_after}")
    else:
        print(f"Request {request_num:3d}: ERROR {response.status_code} - {response.text[:50]}")
    return response.status_code, retry_after


async def main():
    print(f"Sending {NUM_REQUESTS} requests to {BASE_URL} (limit {LIMIT}/{settings.RATE_LIMIT_WINDOW}s)")

    start_time = time.time()
    async with httpx.AsyncClient(timeout=5.0) as client:
        results = [await send_request(client, i + 1) for i in range(NUM_REQUESTS)]

    successes = sum(1 for status, _ in results if status == 200)
    rate_limited = sum(1 for status, _ in results if status == 429)

    print()
    print(f"  Successful:    {successes}")
    print(f"  Rate limited:  {rate_limited}")
    print(f"  Total time:    {time.time() - start_time:.2f}s")

    if successes == LIMIT and rate_limited == NUM_REQUESTS - LIMIT:
        print("PASSED")
    else:
        print(f"Expected {LIMIT} successes and {NUM_REQUESTS - LIMIT} rate limited")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
