#!/usr/bin/env python3
"""
Seed script — creates a realistic dataset for trying out the feed.

Creates:
  • 10 users
  • A follow graph (each user follows 4 others)
  • 3 activities per user (recipes, collections and menus)

Run against a running API:
  python scripts/seed_data.py --api-url http://localhost:8000

All IDs are printed so you can use them in curl commands.
"""
import argparse
import json
import random
import time
import urllib.request
import urllib.error
from dataclasses import dataclass
from typing import Optional


BASE_USERS = [
    ("alice_bakes", "Alice Chen"),
    ("bob_braises", "Bob Martinez"),
    ("carol_cures", "Carol Singh"),
    ("dave_dumplings", "Dave Kim"),
    ("eve_eats", "Eve Johnson"),
    ("frank_ferments", "Frank Williams"),
    ("grace_grills", "Grace Li"),
    ("henry_herbs", "Henry Brown"),
    ("iris_infuses", "Iris Davis"),
    ("jack_jams", "Jack Wilson"),
]

SAMPLE_ACTIVITIES = [
    ("recipe_created", "Brown Butter Banana Bread", "Toast the butter until it smells like **hazelnuts**."),
    ("recipe_created", "Weeknight Chicken Adobo", "Vinegar, soy, garlic, bay. Done in 40 minutes."),
    ("recipe_created", "Crispy Smashed Potatoes", "# Method\nBoil, smash, roast hot."),
    ("recipe_created", "Miso Glazed Aubergine", "Score deep so the glaze gets in."),
    ("recipe_created", "Sourdough Focaccia", "Long cold proof, lots of olive oil."),
    ("collection_created", "Five Ingredient Dinners", None),
    ("collection_created", "Rainy Day Soups", None),
    ("collection_created", "Picnic Favourites", None),
    ("menu_created", "Sunday Brunch for Six", None),
    ("menu_created", "Lunar New Year Feast", None),
    ("menu_created", "Midsummer Garden Party", None),
]


@dataclass
class ApiClient:
    base_url: str
    internal_token: Optional[str] = None

    def request(self, method: str, path: str, data: Optional[dict] = None,
                user_id: Optional[str] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if user_id:
            headers["X-User-Id"] = user_id
        if self.internal_token:
            headers["X-Internal-Token"] = self.internal_token
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                return json.loads(resp.read())
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.request("GET", "/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except urllib.error.URLError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str, internal_token: Optional[str]) -> None:
    client = ApiClient(api_url, internal_token)
    wait_for_api(client)

    # ── Create users ─────────────────────────────────────────────────────
    print("Creating users...")
    user_ids: list[str] = []
    for username, display_name in BASE_USERS:
        result = client.request("POST", "/users", {"username": username, "display_name": display_name})
        uid = result.get("user_id", "")
        if uid:
            user_ids.append(uid)
            print(f"  ✓ {username} ({uid})")
        else:
            print(f"  ✗ Failed to create {username}")

    if len(user_ids) < 2:
        print("Not enough users created — aborting")
        return

    # ── Create follow graph ───────────────────────────────────────────────
    print("\nCreating follow relationships...")
    edges = 0
    for actor_id in user_ids:
        targets = random.sample([u for u in user_ids if u != actor_id], k=min(4, len(user_ids) - 1))
        for target_id in targets:
            if client.request("POST", f"/follow/{target_id}", user_id=actor_id).get("changed"):
                edges += 1
    print(f"  ✓ {edges} follow edges created")

    # ── Publish activities ────────────────────────────────────────────────
    print("\nPublishing activities...")
    published = 0
    for n, user_id in enumerate(user_ids):
        for i in range(3):
            kind, title, content = SAMPLE_ACTIVITIES[(n * 3 + i) % len(SAMPLE_ACTIVITIES)]
            result = client.request("POST", "/activities", {
                "author_id": user_id,
                "kind": kind,
                "entity_id": f"{kind.split('_')[0]}-{n}-{i}",
                "entity_title": title,
                "content": content,
            })
            if result.get("activity"):
                published += 1
    print(f"  ✓ {published} activities published")

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    u = user_ids[0]
    print(f"# Get the feed for user '{BASE_USERS[0][0]}':")
    print(f"  curl -s -H 'X-User-Id: {u}' '{api_url}/feed?limit=10' | python3 -m json.tool\n")
    print(f"# Clear that feed again:")
    print(f"  recipe-feed-admin clear-feed {u}\n")
    print(f"# Check Jaeger traces: http://localhost:16686")
    print(f"# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Recipe Feed system")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--internal-token", default=None, help="INTERNAL_API_TOKEN of the API, if set")
    args = parser.parse_args()
    main(args.api_url, args.internal_token)
