import asyncio
import httpx
import time
import os
import sys
import uuid
from datetime import datetime, timezone
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# A scheduled quiz whose window is currently open
SCHEDULED_QUIZ_ID = os.getenv("LOAD_TEST_SCHEDULED_QUIZ_ID")
TARGET_URL = "http://localhost:8000"
if len(sys.argv) > 1 and sys.argv[1].startswith("http"):
    TARGET_URL = sys.argv[1]

if not SCHEDULED_QUIZ_ID:
    print("❌ Error: LOAD_TEST_SCHEDULED_QUIZ_ID not found in .env file.")
    sys.exit(1)


async def simulate_user(client: httpx.AsyncClient, user_id: uuid.UUID, total_requests: int):
    """Fire all of a user's play requests at once; only one start may be recorded."""
    headers = {"X-User-Id": str(user_id)}
    body = {
        "scheduledQuizId": SCHEDULED_QUIZ_ID,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    async def play():
        start = time.time()
        try:
            resp = await client.post(f"{TARGET_URL}/play/scheduledQuiz", json=body, headers=headers)
            return resp.status_code, time.time() - start
        except httpx.HTTPError:
            return None, time.time() - start

    results = await asyncio.gather(*(play() for _ in range(total_requests)))
    success = sum(1 for code, _ in results if code == 200)
    return success, len(results) - success, [t for _, t in results]


async def run_load_test(concurrent_users: int, requests_per_user: int):
    print(f"🚀 Starting Load Test on {TARGET_URL}")
    print(f"👥 Users: {concurrent_users}")
    print(f"🔄 Concurrent play requests per user: {requests_per_user}")
    print(f"📨 Total requests: {concurrent_users * requests_per_user}")
    print("-" * 40)

    async with httpx.AsyncClient(timeout=10.0) as client:
        start_time = time.time()
        results = await asyncio.gather(*(
            simulate_user(client, uuid.uuid4(), requests_per_user)
            for _ in range(concurrent_users)
        ))
        total_time = time.time() - start_time

    # Aggregate results
    total_success = sum(r[0] for r in results)
    total_fail = sum(r[1] for r in results)
    all_times = [t for r in results for t in r[2]]
    avg_latency = (sum(all_times) / len(all_times)) * 1000 if all_times else 0

    print("-" * 40)
    print(f"✅ Test Completed in {total_time:.2f} seconds")
    print(f"📊 Results:")
    print(f"   CanPlay: {total_success}")
    print(f"   Other:   {total_fail}")
    print(f"   RPS (Req/sec): {len(all_times) / total_time:.2f}")
    print(f"   Avg Latency: {avg_latency:.2f} ms")


if __name__ == "__main__":
    # Default settings
    USERS = 50
    REQS = 10

    # python tests/load_test.py [url] [users] [reqs]
    if len(sys.argv) > 2:
        USERS = int(sys.argv[2])
    if len(sys.argv) > 3:
        REQS = int(sys.argv[3])

    asyncio.run(run_load_test(USERS, REQS))
