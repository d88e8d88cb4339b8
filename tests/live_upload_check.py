"""
Manual check script for a running deduplication API.

This script exercises the live endpoints:
1. GET /health - Service and store status
2. POST /upload - CSV upload, then the same upload again (all duplicates)
3. POST /upload - Error handling (no file, wrong type, no data)

Run the API server first:
    python -m DEDUP.microservices.api

Then run this check:
    python tests/live_upload_check.py

Note: the second section writes its identifiers to the configured store.
"""

import json
import random

import requests


BASE_URL = "http://localhost:8301"


def print_section(title: str):
    """Print a formatted section header."""
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80)


def print_response(response: requests.Response):
    """Pretty print a response."""
    print(f"\nStatus Code: {response.status_code}")
    print("Response:")
    print(json.dumps(response.json(), indent=2))


def check_health() -> bool:
    """Verify the API is running and the store is reachable."""
    print_section("1. Health Check")

    response = requests.get(f"{BASE_URL}/health")
    print_response(response)

    data = response.json()
    if response.status_code == 200 and data.get("store_connected"):
        print("\n✅ Service is up and the store is reachable")
        return True
    print(f"\n❌ Service is degraded: {data.get('services')}")
    return False


def check_upload_roundtrip() -> bool:
    """Upload fresh identifiers, then upload them again."""
    print_section("2. Upload and Re-upload")

    base = random.randint(10**9, 10**10)
    identifiers = [base + offset for offset in range(5)]
    content = "\n".join(str(value) for value in identifiers).encode()

    first = requests.post(f"{BASE_URL}/upload", files={"file": ("ids.csv", content, "text/csv")})
    print_response(first)
    if first.json().get("status") != "Success":
        print("\n❌ First upload was not a success")
        return False

    new_file = requests.get(BASE_URL + first.json()["files"]["new"])
    print(f"\nNew file contents:\n{new_file.text}")

    second = requests.post(f"{BASE_URL}/upload", files={"file": ("ids.csv", content, "text/csv")})
    print_response(second)
    if second.json().get("status") != "AllDuplicates":
        print("\n❌ Re-upload was not reported as all duplicates")
        return False

    print("\n✅ Upload round trip behaves as expected")
    return True


def check_error_handling() -> bool:
    """Each invalid upload gets its own status."""
    print_section("3. Error Handling")

    cases = [
        ("No file", {"other": ("a.csv", b"1", "text/csv")}, 400),
        ("Wrong type", {"file": ("ids.txt", b"1", "text/plain")}, 415),
        ("No numeric data", {"file": ("ids.csv", b"name\nalice\n", "text/csv")}, 422),
    ]

    all_passed = True
    for description, files, expected in cases:
        response = requests.post(f"{BASE_URL}/upload", files=files)
        ok = response.status_code == expected
        all_passed = all_passed and ok
        marker = "✅" if ok else "❌"
        print(f"{marker} {description}: {response.status_code} {response.json().get('status')}")

    return all_passed


def main():
    """Run all checks."""
    print_section("Deduplication API Live Check")
    print(f"Target: {BASE_URL}")

    try:
        if not check_health():
            print("\n\n❌ API server is not healthy")
            return

        check_upload_roundtrip()
        check_error_handling()

        print_section("Check Complete")

    except requests.exceptions.ConnectionError:
        print("\n\n❌ ERROR: Could not connect to API server")
        print(f"Make sure the API server is running at {BASE_URL}")
        print("\nStart the API server with:")
        print("  python -m DEDUP.microservices.api")


if __name__ == "__main__":
    main()
