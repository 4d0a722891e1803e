"""
Demo script — walks one file through the whole upload flow.

Usage:
    python -m scripts.upload_sample [path] [category]

Steps:
1. POST /uploads/intent     → ticket + presigned URL
2. PUT the bytes straight to object storage
3. POST /uploads/finalize   → 202 Accepted with a job id

Run scripts/generate_sample_image.py and scripts/seed_categories.py
first. The worker picks the job up within a second; watch its log for
the step timings, or poll GET /media once it completes (uploads by the
demo admin skip moderation).
"""

import os
import sys

import httpx

BASE_URL = "http://localhost:8000"
HEADERS = {"X-Caller-Id": "demo-admin", "X-Caller-Role": "admin"}


def upload(path: str = "sample_data/sample.jpg", category: str = "landscape"):
    client = httpx.Client(base_url=BASE_URL, timeout=10.0, headers=HEADERS)

    with open(path, "rb") as f:
        data = f.read()

    intent = client.post("/uploads/intent", json={
        "fileName": os.path.basename(path),
        "fileType": "image/jpeg",
        "fileSize": len(data),
    })
    intent.raise_for_status()
    ticket = intent.json()
    print(f"  [intent]   {ticket['ticketId']} → {ticket['rawObjectKey']}")

    put = httpx.put(ticket["uploadUrl"], content=data, headers={"Content-Type": "image/jpeg"})
    put.raise_for_status()
    print(f"  [upload]   {len(data)} bytes stored")

    accepted = client.post("/uploads/finalize", json={
        "ticketId": ticket["ticketId"],
        "rawObjectKey": ticket["rawObjectKey"],
        "titleText": "Sample upload",
        "categoryRef": category,
        "tags": ["demo", "sample"],
    })
    accepted.raise_for_status()
    body = accepted.json()
    print(f"  [finalize] job {body['jobId']} — {body['message']}")

    print(f"\nDone! Expect it in ~{body['processingTimeHint']}s.")
    print("List media:  curl http://localhost:8000/media")


if __name__ == "__main__":
    upload(*sys.argv[1:3])
