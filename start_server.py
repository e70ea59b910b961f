#!/usr/bin/env python3
"""Start the scheduling API, honouring the PORT environment variable."""

import os
import sys

import uvicorn

port = os.environ.get("PORT", "8000")

try:
    port_int = int(port)
except ValueError:
    print(f"Warning: Invalid PORT value '{port}', using default 8000", file=sys.stderr)
    port_int = 8000

src_path = os.path.abspath("src")
if os.path.isdir(src_path) and src_path not in sys.path:
    sys.path.insert(0, src_path)

print(f"Starting nurse scheduler on port {port_int}...", file=sys.stderr)

# Single worker: the in-memory schedule store and its per-key locks are process-local
uvicorn.run(
    "nurse_scheduler.main:app",
    host="0.0.0.0",
    port=port_int,
    proxy_headers=True,
    forwarded_allow_ips="*",
)
