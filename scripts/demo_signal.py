"""Post a demo signal to the local service and poll until its execution finishes."""

import json
import sys
import time
import urllib.error
import urllib.request
from datetime import datetime, timezone


BASE_URL = "http://127.0.0.1:8000"
TIMEOUT_SECONDS = 60
POLL_INTERVAL_SECONDS = 1.0

TERMINAL_STATUSES = {"COMPLETED", "FAILED", "CANCELLED"}


def _request(method: str, path: str, payload: dict | None = None) -> dict:
    url = f"{BASE_URL}{path}"
    data = None
    headers = {"Content-Type": "application/json"}

    if payload is not None:
        data = json.dumps(payload).encode("utf-8")

    req = urllib.request.Request(url=url, method=method, data=data, headers=headers)
    with urllib.request.urlopen(req, timeout=10) as resp:
        body = resp.read().decode("utf-8")
        return json.loads(body) if body else {}


def main() -> int:
    payload = {
        "id": f"demo-{int(time.time())}",
        "type": "EMERGENCY",
        "severity": "CRITICAL",
        "strength": 92,
        "asset_id": "pump-7",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "description": "Pressure relief valve stuck open",
        "source": "demo-script",
    }

    try:
        print("Posting demo signal to /signals ...")
        accepted = _request("POST", "/signals", payload)
    except urllib.error.HTTPError as exc:
        print(f"Signal rejected ({exc.code}): {exc.read().decode('utf-8')}", file=sys.stderr)
        return 1
    except urllib.error.URLError as exc:
        print(f"Failed to reach API at {BASE_URL}: {exc}", file=sys.stderr)
        print("Start it first with: uvicorn main:app", file=sys.stderr)
        return 1

    execution_id = accepted.get("execution_id")
    if not execution_id:
        print(f"Signal was not started immediately: {accepted}", file=sys.stderr)
        return 1

    print(f"Execution started: {execution_id} (workflow {accepted.get('workflow_id')})")
    print("Polling for completion ...")

    deadline = time.time() + TIMEOUT_SECONDS
    while time.time() < deadline:
        record = _request("GET", f"/executions/{execution_id}")
        status = record.get("status")
        print(f"  status={status}  completed={record.get('completed_steps')}")

        if status in TERMINAL_STATUSES:
            print("\nFinal execution record:")
            print(json.dumps(record, indent=2))
            return 0 if status == "COMPLETED" else 2

        time.sleep(POLL_INTERVAL_SECONDS)

    print(f"Timed out after {TIMEOUT_SECONDS}s waiting for completion.", file=sys.stderr)
    return 3


if __name__ == "__main__":
    raise SystemExit(main())
