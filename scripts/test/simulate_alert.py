"""Send a manual alert (and optionally register the camera first) to a running backend."""

import argparse
import requests

DEFAULT_BACKEND = "http://localhost:8080/api/v1"


def ensure_camera(base_url, camera_id, headers):
    resp = requests.get(f"{base_url}/cameras/{camera_id}", headers=headers, timeout=10)
    if resp.status_code == 200:
        return
    resp = requests.post(f"{base_url}/cameras", headers=headers, timeout=10, json={
        "camera_id": camera_id,
        "name": f"Simulated {camera_id}",
        "stream_url": "http://127.0.0.1:9999/mjpeg",
        "enabled": False,
    })
    print(f"📷 Registered {camera_id} → HTTP {resp.status_code}")


def simulate_alert(base_url, camera_id, severity, title, headers):
    resp = requests.post(f"{base_url}/alerts", headers=headers, timeout=10, json={
        "camera_id": camera_id, "severity": severity, "title": title,
        "description": "Raised by scripts/test/simulate_alert.py",
    })
    print(f"✅ Alert → HTTP {resp.status_code}: {resp.json()}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate a manual alert for testing")
    parser.add_argument("--backend", default=DEFAULT_BACKEND)
    parser.add_argument("--camera", default="CAM-SIM")
    parser.add_argument("--severity", default="high", choices=["low", "medium", "high", "critical"])
    parser.add_argument("--title", default="Test alert")
    parser.add_argument("--api-key", default=None)
    args = parser.parse_args()

    headers = {"X-API-Key": args.api_key} if args.api_key else {}
    ensure_camera(args.backend, args.camera, headers)
    simulate_alert(args.backend, args.camera, args.severity, args.title, headers)
