#!/usr/bin/env python3
"""
Seed script — creates a small, realistic dataset for poking at the API.

Creates:
  • 10 profiles (the user ids are generated here; in production they come
    from the auth gateway via the X-User-Id header)
  • A follow graph (each user follows 4 others)
  • 5 threads per user, plus a few replies and @mentions
  • Likes spread across threads

Run against a running API:
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass
from typing import Optional


BASE_USERS = [
    ("alice_ai", "Alice Chen"),
    ("bob_builder", "Bob Martinez"),
    ("carol_codes", "Carol Singh"),
    ("dave_designs", "Dave Kim"),
    ("eve_engineer", "Eve Johnson"),
    ("frank_feeds", "Frank Williams"),
    ("grace_graphs", "Grace Li"),
    ("henry_hpc", "Henry Brown"),
    ("iris_infra", "Iris Davis"),
    ("jack_ml", "Jack Wilson"),
]

SAMPLE_THREADS = [
    "Just shipped a new feature to production. Zero downtime deploys are beautiful.",
    "Cursor pagination beats offsets the moment your feed gets busy.",
    "Hot take: every counter in your schema is a cache. Treat it like one.",
    "Spent the morning chasing a race between two like buttons. Unique indexes win again.",
    "Reverse-chronological feeds are underrated. No ranking model, no surprises.",
    "FastAPI async endpoints are a joy. Three lookups in parallel, one response.",
    "Grafana dashboards are the first thing I build for any new service.",
    "Prometheus metrics: the difference between knowing and guessing in production.",
    "OpenTelemetry traces finally connected to Jaeger. The waterfall diagram is so satisfying.",
    "Notification dedup windows: five minutes feels right, ten feels broken.",
    "Distributed SQL with TiDB: horizontal scaling without changing your SQL dialect.",
    "Content moderation at scale is a harder problem than the feed itself.",
]

SAMPLE_REPLIES = [
    "Agreed, learned this the hard way.",
    "Would love a write-up on this!",
    "Counterpoint: it depends on your read/write ratio.",
    "This is the way.",
]


@dataclass
class ApiClient:
    base_url: str

    def request(self, method: str, path: str, user_id: Optional[str] = None, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if user_id:
            headers["X-User-Id"] = user_id
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, user_id: Optional[str] = None, data: Optional[dict] = None) -> dict:
        return self.request("POST", path, user_id, data if data is not None else {})

    def get(self, path: str, user_id: Optional[str] = None) -> dict:
        return self.request("GET", path, user_id)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except (urllib.error.URLError, OSError):
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Create profiles ──────────────────────────────────────────────────
    print("Creating profiles...")
    users: dict[str, str] = {}
    for username, display_name in BASE_USERS:
        user_id = str(uuid.uuid4())
        result = client.post("/users/", user_id, {"username": username, "display_name": display_name})
        if result.get("user_id"):
            users[username] = user_id
            print(f"  ✓ {username} ({user_id})")
        else:
            print(f"  ✗ Failed to create {username}")

    if not users:
        print("No profiles created — aborting")
        return
    user_ids = list(users.values())
    usernames = list(users)

    # ── Create follow graph ───────────────────────────────────────────────
    print("\nCreating follow relationships...")
    follows = 0
    for follower_id in user_ids:
        others = [u for u in user_ids if u != follower_id]
        for followee_id in random.sample(others, k=min(4, len(others))):
            if client.post(f"/users/{followee_id}/follow", follower_id).get("following"):
                follows += 1
    print(f"  ✓ {follows} follows created")

    # ── Create threads ────────────────────────────────────────────────────
    print("\nCreating threads...")
    thread_ids: list[str] = []
    pool = SAMPLE_THREADS * 5
    random.shuffle(pool)
    for i, user_id in enumerate(user_ids * 5):
        content = pool[i % len(pool)]
        if random.random() < 0.2:
            content += f" cc @{random.choice(usernames)}"
        result = client.post("/threads/", user_id, {"content": content})
        if result.get("id"):
            thread_ids.append(result["id"])
    print(f"  ✓ {len(thread_ids)} threads created")

    # ── Replies ───────────────────────────────────────────────────────────
    print("\nAdding replies...")
    replies = 0
    for thread_id in random.sample(thread_ids, k=min(15, len(thread_ids))):
        replier = random.choice(user_ids)
        result = client.post(
            f"/threads/{thread_id}/replies", replier, {"content": random.choice(SAMPLE_REPLIES)}
        )
        if result.get("id"):
            replies += 1
    print(f"  ✓ {replies} replies added")

    # ── Likes ─────────────────────────────────────────────────────────────
    print("\nAdding likes...")
    likes = 0
    for thread_id in thread_ids:
        for user_id in random.sample(user_ids, k=random.randint(0, 5)):
            if client.post(f"/threads/{thread_id}/like", user_id).get("liked"):
                likes += 1
    print(f"  ✓ {likes} likes added")

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    name, u = usernames[0], user_ids[0]
    print(f"# Following feed for '{name}':")
    print(f"  curl -s -H 'X-User-Id: {u}' '{api_url}/feed/following' | python3 -m json.tool\n")
    print(f"# Notifications for '{name}':")
    print(f"  curl -s -H 'X-User-Id: {u}' '{api_url}/notifications/' | python3 -m json.tool\n")
    print("# Create a new thread:")
    print(f"  curl -s -X POST '{api_url}/threads/' \\")
    print(f"    -H 'Content-Type: application/json' -H 'X-User-Id: {u}' \\")
    print("    -d '{\"content\": \"Hello world!\"}' | python3 -m json.tool\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print(f"# Check metrics: {api_url}/metrics")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Social Feed API")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
