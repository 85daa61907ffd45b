#!/usr/bin/env python3
"""
Seed script: creates a small social graph through the web API.

Creates:
  • 8 demo accounts (signed up and logged in)
  • Friendships (requests sent, most of them accepted)
  • Follows, best friends and a few hidden users
  • One unfriending, so the counter has something to show

The BaaS must have email confirmation disabled, otherwise signups come back
as "confirmation_required" and the account is skipped.

Run after the web service is up:
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Optional


BASE_USERS = [
    ("alice", "Alice Chen"),
    ("bob", "Bob Martinez"),
    ("carol", "Carol Singh"),
    ("dave", "Dave Kim"),
    ("erin", "Erin Johnson"),
    ("frank", "Frank Williams"),
    ("grace", "Grace Li"),
    ("henry", "Henry Brown"),
]

PASSWORD = "unfriendable-demo"


@dataclass
class ApiClient:
    base_url: str
    tokens: dict[str, str] = field(default_factory=dict)

    def request(self, method: str, path: str, data: Optional[dict] = None, as_user: Optional[str] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if as_user:
            headers["Authorization"] = f"Bearer {self.tokens[as_user]}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, data: Optional[dict] = None, as_user: Optional[str] = None) -> dict:
        return self.request("POST", path, data, as_user)

    def get(self, path: str, as_user: Optional[str] = None) -> dict:
        return self.request("GET", path, as_user=as_user)

    def delete(self, path: str, as_user: Optional[str] = None) -> dict:
        return self.request("DELETE", path, as_user=as_user)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except urllib.error.URLError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def create_account(client: ApiClient, username: str, display_name: str, domain: str) -> bool:
    email = f"{username}@{domain}"
    result = client.post(
        "/auth/signup",
        {"email": email, "password": PASSWORD, "username": username, "display_name": display_name},
    )
    if result.get("status") == "logged_in":
        client.tokens[username] = result["session_token"]
        return True

    # account may exist from an earlier run
    result = client.post("/auth/login", {"email": email, "password": PASSWORD})
    token = result.get("session_token")
    if token:
        client.tokens[username] = token
        return True
    return False


def main(api_url: str, domain: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Accounts ──────────────────────────────────────────────────────────
    print("Creating accounts...")
    for username, display_name in BASE_USERS:
        if create_account(client, username, display_name, domain):
            print(f"  ✓ {username}")
        else:
            print(f"  ✗ Failed to create {username}")

    usernames = list(client.tokens)
    if len(usernames) < 2:
        print("Not enough accounts, aborting")
        return

    # ── Friendships ───────────────────────────────────────────────────────
    print("\nSending friend requests...")
    friends: list[tuple[str, str]] = []
    pending = 0
    for requester in usernames:
        others = [u for u in usernames if u != requester]
        for addressee in random.sample(others, k=min(2, len(others))):
            if (addressee, requester) in friends or (requester, addressee) in friends:
                continue
            if not client.post(f"/profile/{addressee}/friend-request", as_user=requester):
                continue
            if random.random() < 0.75:
                client.post(f"/profile/{requester}/friend-request/accept", as_user=addressee)
                friends.append((requester, addressee))
            else:
                pending += 1
    print(f"  ✓ {len(friends)} friendships, {pending} requests left pending")

    # ── Follows ───────────────────────────────────────────────────────────
    print("\nCreating follows...")
    follows = 0
    for follower in usernames:
        others = [u for u in usernames if u != follower]
        for followee in random.sample(others, k=min(2, len(others))):
            paired = (follower, followee) in friends or (followee, follower) in friends
            if not paired and client.post(f"/profile/{followee}/follow", as_user=follower):
                follows += 1
    print(f"  ✓ {follows} follows")

    # ── Best friends, hiding, one unfriending ─────────────────────────────
    print("\nAdding best friends and hidden users...")
    for a, b in friends[: len(friends) // 2]:
        client.post(f"/profile/{b}/best-friend", as_user=a)
    for username in random.sample(usernames, k=min(3, len(usernames))):
        target = random.choice([u for u in usernames if u != username])
        client.post(f"/profile/{target}/hide", as_user=username)
    if friends:
        a, b = friends[-1]
        client.delete(f"/profile/{b}/friendship", as_user=a)
        print(f"  ✓ {a} unfriended {b}")

    # ── Summary ───────────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Some commands to try:\n")
    first = usernames[0]
    token = client.tokens[first]
    print(f"# Home feed for '{first}':")
    print(f"  curl -s '{api_url}/home/feed' -H 'Authorization: Bearer {token}' | python3 -m json.tool\n")
    print(f"# Profile page of '{usernames[1]}' as '{first}':")
    print(f"  curl -s '{api_url}/profile/{usernames[1]}' -H 'Authorization: Bearer {token}' | python3 -m json.tool\n")
    print(f"# Global unfriend counter:")
    print(f"  curl -s '{api_url}/home/unfriend-count' -H 'Authorization: Bearer {token}'")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Unfriendable with demo accounts")
    parser.add_argument("--api-url", default="http://localhost:8000", help="Web service base URL")
    parser.add_argument("--email-domain", default="example.com", help="Domain for demo emails")
    args = parser.parse_args()
    main(args.api_url, args.email_domain)
