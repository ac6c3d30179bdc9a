"""
Wait for a signing job to reach a terminal state and print the result.
Run: python -m scripts.wait_for_signing <job_id> [--base-url http://localhost:3005]
"""
import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from services.errors import ExternalServiceError
from services.retry import poll_until

TERMINAL = {"completed", "failed"}


async def wait_for_job(client: httpx.AsyncClient, job_id: str, attempts: int, max_delay: float) -> dict:
    async def fetch() -> dict:
        resp = await client.get(f"/api/signing/jobs/{job_id}")
        resp.raise_for_status()
        return resp.json()

    return await poll_until(fetch, lambda job: job.get("status") in TERMINAL, attempts=attempts, max_delay=max_delay)


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("job_id")
    parser.add_argument("--base-url", default=os.environ.get("API_BASE_URL", "http://localhost:3005"))
    parser.add_argument("--attempts", type=int, default=10)
    parser.add_argument("--max-delay", type=float, default=30.0)
    args = parser.parse_args(argv)

    async with httpx.AsyncClient(base_url=args.base_url, timeout=10.0) as client:
        try:
            job = await wait_for_job(client, args.job_id, args.attempts, args.max_delay)
        except ExternalServiceError as e:
            print(f"Job {args.job_id} still running: {e.message}")
            return 2
        except httpx.HTTPStatusError as e:
            print(f"Job lookup failed: HTTP {e.response.status_code}")
            return 1

    print(f"Job {args.job_id}: {job['status']}")
    if job.get("signingUrl"):
        print(f"Signing URL: {job['signingUrl']}")
    if job.get("errorMessage"):
        print(f"Error: {job['errorMessage']}")
    return 0 if job["status"] == "completed" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
