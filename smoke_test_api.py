"""
Smoke Test for the Lokalqy API - Owner Isolation & RBAC

Tests:
1. Register/login two users (A and B)
2. Create a property and a vehicle as A
3. Verify B cannot see A's property or vehicle in lists
4. Verify B gets 404 (not 403) on A's property and vehicle
5. Verify B cannot list users (admin only, 403)
6. Verify B cannot promote themself to admin (403)
7. Clean up: A and B delete themselves (cascades to their items)

Run: python smoke_test_api.py

Requirements:
- Backend running on localhost:8000 (uvicorn backend.main:app)
- Fresh database or test mode
"""

import sys
import uuid
from typing import Any, Dict, Optional

import requests

BASE_URL = "http://localhost:8000"


class TestResult:
    def __init__(self):
        self.passed = 0
        self.failed = 0
        self.tests = []

    def add_pass(self, name: str, detail: str = ""):
        self.passed += 1
        self.tests.append(("PASS", name, detail))
        print(f"PASS: {name}")
        if detail:
            print(f"  -> {detail}")

    def add_fail(self, name: str, detail: str = ""):
        self.failed += 1
        self.tests.append(("FAIL", name, detail))
        print(f"FAIL: {name}")
        if detail:
            print(f"  -> {detail}")

    def expect_status(self, name: str, resp: requests.Response, expected: int, detail: str = ""):
        if resp.status_code == expected:
            self.add_pass(name, detail)
        else:
            self.add_fail(name, f"Expected {expected}, got {resp.status_code}: {resp.text[:200]}")

    def summary(self):
        print("\n" + "=" * 60)
        print(f"SMOKE TEST SUMMARY: {self.passed} passed, {self.failed} failed")
        print("=" * 60)
        return self.failed == 0


def register_and_login(name: str, password: str) -> Optional[Dict[str, Any]]:
    """Register a new user and return its id and auth headers"""
    email = f"{name}@smoke.test"
    requests.post(f"{BASE_URL}/api/auth/register", json={
        "name": name,
        "email": email,
        "password": password,
    })

    resp = requests.post(f"{BASE_URL}/api/auth/login", json={"email": email, "password": password})
    if resp.status_code != 200:
        return None

    data = resp.json()
    return {
        "id": data["user"]["id"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


def section(title: str):
    print(title)
    print("-" * 60)


def main():
    result = TestResult()

    print("=" * 60)
    print("SMOKE TEST: Owner Isolation & RBAC")
    print("=" * 60)
    print()

    # Unique names so the test can run against a database that already has data
    suffix = uuid.uuid4().hex[:6]

    section("TEST 1: Setup - Register two users")
    user_a = register_and_login(f"smoke_a_{suffix}", "password123")
    user_b = register_and_login(f"smoke_b_{suffix}", "password123")

    if not user_a or not user_b:
        result.add_fail("Setup", "Failed to register/login test users")
        result.summary()
        return 1

    result.add_pass("Setup", f"A={user_a['id']}, B={user_b['id']}")
    print()

    section("TEST 2: Create property and vehicle as A")
    resp = requests.post(f"{BASE_URL}/api/properties", headers=user_a["headers"], json={
        "name": f"Smoke House {suffix}",
        "type": "apartment",
        "address": f"Smoke Street {suffix}",
        "status": "available",
        "monthly_rent": 900,
        "expenses": 60,
    })
    result.expect_status("Property Creation", resp, 201)
    property_id = resp.json().get("id") if resp.status_code == 201 else None

    plate = f"{uuid.uuid4().int % 10000:04d}SMK"
    resp = requests.post(f"{BASE_URL}/api/vehicles", headers=user_a["headers"], json={
        "name": "Smoke Car",
        "type": "car",
        "plate": plate,
        "status": "available",
        "daily_rent": 35,
        "expenses": 4,
    })
    result.expect_status("Vehicle Creation", resp, 201, f"plate={plate}")
    vehicle_id = resp.json().get("id") if resp.status_code == 201 else None

    if not property_id or not vehicle_id:
        result.summary()
        return 1
    print()

    section("TEST 3: Owner Isolation - Lists")
    for label, path, doc_id in (("properties", "/api/properties", property_id), ("vehicles", "/api/vehicles", vehicle_id)):
        resp = requests.get(f"{BASE_URL}{path}", headers=user_b["headers"])
        if resp.status_code != 200:
            result.add_fail(f"Isolation - List {label}", f"Unexpected status {resp.status_code}")
        elif any(d.get("id") == doc_id for d in resp.json()):
            result.add_fail(f"Isolation - List {label}", f"B can see A's {label}!")
        else:
            result.add_pass(f"Isolation - List {label}", f"B cannot see A's {label}")
    print()

    section("TEST 4: Owner Isolation - Read/Update/Delete")
    for label, path in (("property", f"/api/properties/{property_id}"), ("vehicle", f"/api/vehicles/{vehicle_id}")):
        result.expect_status(f"Isolation - Get {label}", requests.get(f"{BASE_URL}{path}", headers=user_b["headers"]), 404)
        result.expect_status(
            f"Isolation - Update {label}",
            requests.put(f"{BASE_URL}{path}", json={"paid": True}, headers=user_b["headers"]),
            404,
        )
        result.expect_status(f"Isolation - Delete {label}", requests.delete(f"{BASE_URL}{path}", headers=user_b["headers"]), 404)
    print()

    section("TEST 5: RBAC - User list is admin only")
    result.expect_status("RBAC - List users", requests.get(f"{BASE_URL}/api/users", headers=user_b["headers"]), 403)
    result.expect_status(
        "RBAC - Read other user",
        requests.get(f"{BASE_URL}/api/users/{user_a['id']}", headers=user_b["headers"]),
        403,
    )
    print()

    section("TEST 6: RBAC - Self-promotion")
    resp = requests.put(f"{BASE_URL}/api/users/{user_b['id']}", json={"role": "admin"}, headers=user_b["headers"])
    result.expect_status("RBAC - Self-promotion", resp, 403)
    print()

    section("TEST 7: Cleanup")
    for label, user in (("A", user_a), ("B", user_b)):
        resp = requests.delete(f"{BASE_URL}/api/users/{user['id']}", headers=user["headers"])
        result.expect_status(f"Cleanup - Delete {label}", resp, 200)

    resp = requests.get(f"{BASE_URL}/api/auth/me", headers=user_a["headers"])
    result.expect_status("Cleanup - Token of deleted user", resp, 401)
    print()

    success = result.summary()
    return 0 if success else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(1)
    except requests.ConnectionError as e:
        print(f"\n\nERROR: backend not reachable at {BASE_URL}: {e}")
        sys.exit(1)
