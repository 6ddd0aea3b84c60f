import re
import sys

import requests

XRAY_TRACE_ID = re.compile(r"^1-[0-9a-f]{8}-[0-9a-f]{24}$")

TRACED_ENDPOINTS = [
    ("AWS SDK call", "aws-sdk-call"),
    ("Outgoing HTTP call", "outgoing-http-call"),
    ("Outgoing sample app call", "outgoing-sampleapp"),
    ("Outgoing database call", "outgoing-db-call"),
]


class SampleAppSmokeTester:
    def __init__(self, base_url="http://localhost:8080", timeout=30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.tests_run = 0
        self.tests_passed = 0

    def run_test(self, name, endpoint, expected_status=200):
        """Run a single GET against the app; returns (success, response)."""
        url = f"{self.base_url}/{endpoint}"
        self.tests_run += 1
        print(f"\n🔍 Testing {name}...")
        print(f"URL: {url}")

        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            print(f"❌ Failed - Error: {e}")
            return False, None

        print(f"Response Status: {response.status_code}")
        if response.status_code != expected_status:
            print(f"❌ Failed - Expected {expected_status}, got {response.status_code}")
            print(f"Response: {response.text}")
            return False, response

        self.tests_passed += 1
        print(f"✅ Passed - Status: {response.status_code}")
        return True, response

    def test_traced_endpoint(self, name, endpoint):
        success, response = self.run_test(name, endpoint)
        if not success:
            return False
        try:
            trace_id = response.json().get("traceId", "")
        except ValueError:
            print("❌ Response is not JSON")
            return False
        if XRAY_TRACE_ID.match(trace_id):
            print(f"✅ Trace ID: {trace_id}")
            return True
        print(f"❌ Trace ID not in X-Ray format: {trace_id!r}")
        return False

    def test_health_endpoint(self):
        success, response = self.run_test("Health Check Endpoint", "health")
        if not success:
            return False
        try:
            data = response.json()
        except ValueError:
            print("❌ Health response is not JSON")
            return False
        if "status" in data and "db" in data:
            print(f"✅ Health endpoint returned status: {data['status']}, db: {data['db']}")
            return True
        print("❌ Health endpoint missing required fields")
        return False

    def test_metrics_endpoint(self):
        success, _ = self.run_test("Prometheus Metrics Endpoint", "metrics")
        return success


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    tester = SampleAppSmokeTester(*argv[:1])

    print("🚀 Starting Sample App Smoke Tests")
    print("=" * 50)

    results = {"Health endpoint": tester.test_health_endpoint()}
    for name, endpoint in TRACED_ENDPOINTS:
        results[name] = tester.test_traced_endpoint(name, endpoint)
    results["Metrics endpoint"] = tester.test_metrics_endpoint()

    print("\n" + "=" * 50)
    print("📊 TEST RESULTS")
    print("=" * 50)
    print(f"Tests passed: {tester.tests_passed}/{tester.tests_run}")
    for name, ok in results.items():
        print(f"{name}: {'✅ PASS' if ok else '❌ FAIL'}")

    all_passed = all(results.values())
    print(f"\nOverall: {'✅ ALL TESTS PASSED' if all_passed else '❌ SOME TESTS FAILED'}")
    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
