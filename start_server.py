#!/usr/bin/env python3
"""Start the allocation API, honouring the PORT environment variable."""

import logging
import os
import sys

import uvicorn


def _port() -> int:
    raw = os.environ.get("PORT", "8000")
    try:
        return int(raw)
    except ValueError:
        print(f"Warning: Invalid PORT value '{raw}', using default 8000", file=sys.stderr)
        return 8000


def main() -> None:
    src_path = os.path.join(os.getcwd(), "src")
    if os.path.isdir(src_path) and src_path not in sys.path:
        sys.path.insert(0, src_path)

    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
    port = _port()
    print(f"Starting server on port {port}...", file=sys.stderr)
    uvicorn.run(
        "reliefgrid.main:app",
        host="0.0.0.0",
        port=port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
