#!/usr/bin/env python3
"""
Post-Deployment Smoke Test

Validates that a deployed GrantCue API is up, connected to its database,
and still refusing unauthenticated traffic on protected surfaces.

Usage:
    python scripts/health_check.py --url <DEPLOYMENT_URL> --environment <staging|production>

Checks Performed:
    1. /api/health returns 200 and reports the database as connected
    2. A protected endpoint (/api/grants) rejects requests without a JWT (401)
    3. Cron endpoints reject requests without the CRON_SECRET (401)
    4. The public calendar feed answers 404 for an unknown token
    5. Rate-limit headers are present on API responses

Exit Codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import sys
import time
import requests
from typing import Dict, Tuple


def check_status(url: str, endpoint: str, expected_status: int, method: str = 'GET',
                 timeout: int = 15) -> Tuple[bool, str]:
    """
    Calls an endpoint and compares the HTTP status with the expected one.

    Returns:
        Tuple[bool, str]: (success, message)
    """
    full_url = f"{url.rstrip('/')}{endpoint}"

    try:
        response = requests.request(method, full_url, timeout=timeout, allow_redirects=False)
    except requests.exceptions.Timeout:
        return False, f"✗ {endpoint} timed out after {timeout} seconds"
    except requests.exceptions.ConnectionError:
        return False, f"✗ {endpoint} connection failed"

    if response.status_code == expected_status:
        return True, f"✓ {method} {endpoint} returned {response.status_code}"
    return False, f"✗ {method} {endpoint} returned {response.status_code} (expected {expected_status})"


def check_health_endpoint(url: str, timeout: int = 15) -> Tuple[bool, str]:
    full_url = f"{url.rstrip('/')}/api/health"

    try:
        response = requests.get(full_url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        return False, f"✗ /api/health request failed: {str(e)}"

    if response.status_code != 200:
        return False, f"✗ /api/health returned {response.status_code}"

    try:
        data = response.json()
    except ValueError:
        return False, "✗ /api/health returned invalid JSON"

    if data.get('database') == 'connected':
        return True, "✓ /api/health returned 200, database connected"
    return False, f"✗ /api/health database status: {data.get('database', 'unknown')}"


def check_rate_limit_headers(url: str, timeout: int = 15) -> Tuple[bool, str]:
    full_url = f"{url.rstrip('/')}/api/calendar/healthcheck/invalid-token.ics"

    try:
        response = requests.get(full_url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        return False, f"✗ rate-limit check failed: {str(e)}"

    missing = [h for h in ('X-RateLimit-Limit', 'X-RateLimit-Remaining', 'X-RateLimit-Reset')
               if h not in response.headers]
    if missing:
        return False, f"✗ missing rate-limit headers: {', '.join(missing)}"
    return True, f"✓ rate-limit headers present (limit {response.headers['X-RateLimit-Limit']})"


def run_health_checks(url: str, environment: str) -> Dict[str, Tuple[bool, str]]:
    print(f"\n{'='*60}")
    print(f"Post-Deployment Health Checks - {environment.upper()}")
    print(f"{'='*60}\n")
    print(f"Target URL: {url}\n")

    checks = {
        "api_health": lambda: check_health_endpoint(url),
        "auth_required": lambda: check_status(url, "/api/grants?org_id=healthcheck", 401),
        "cron_protected": lambda: check_status(url, "/api/cron/check-deadlines", 401, method='POST'),
        "calendar_feed": lambda: check_status(url, "/api/calendar/healthcheck/invalid-token.ics", 404),
        "rate_limit_headers": lambda: check_rate_limit_headers(url),
    }

    results = {}
    for index, (name, check) in enumerate(checks.items(), start=1):
        print(f"Check {index}: {name}...")
        results[name] = check()
        print(f"  {results[name][1]}\n")
    return results


def print_summary(results: Dict[str, Tuple[bool, str]], environment: str) -> bool:
    print(f"{'='*60}")
    print(f"Health Check Summary - {environment.upper()}")
    print(f"{'='*60}\n")

    passed = sum(1 for success, _ in results.values() if success)
    total = len(results)

    for check_name, (success, _) in results.items():
        print(f"{'✓' if success else '✗'} {check_name}: {'PASS' if success else 'FAIL'}")

    print(f"\nTotal: {passed}/{total} checks passed\n")
    return passed == total


def main():
    parser = argparse.ArgumentParser(description="Run post-deployment health checks")
    parser.add_argument("--url", required=True, help="Deployment URL to check")
    parser.add_argument("--environment", required=True, choices=["staging", "production"],
                        help="Deployment environment")
    parser.add_argument("--retry", type=int, default=3,
                        help="Number of attempts before failing (default: 3)")
    parser.add_argument("--retry-delay", type=int, default=10,
                        help="Delay in seconds between attempts (default: 10)")
    args = parser.parse_args()

    for attempt in range(1, args.retry + 1):
        if attempt > 1:
            print(f"\nRetry attempt {attempt}/{args.retry}")
            time.sleep(args.retry_delay)

        if print_summary(run_health_checks(args.url, args.environment), args.environment):
            print("✓ All health checks passed. Deployment is healthy.\n")
            sys.exit(0)

    print(f"✗ HEALTH CHECKS FAILED AFTER {args.retry} ATTEMPTS", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
