#!/usr/bin/env python
"""
Run the Order Desk API (FastAPI via uvicorn).

Usage:
    python scripts/run_api.py

ORDER_DESK_API_HOST / ORDER_DESK_API_PORT override the bind address.
"""
import subprocess
import sys
import os
from pathlib import Path


def main():
    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    # Ensure src is in python path
    env = os.environ.copy()
    src_path = str(project_root / "src")
    if "PYTHONPATH" in env:
        env["PYTHONPATH"] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env["PYTHONPATH"] = src_path

    host = env.get("ORDER_DESK_API_HOST", "0.0.0.0")
    port = env.get("ORDER_DESK_API_PORT", "8000")

    print(f"Starting Order Desk API on {host}:{port}...")
    try:
        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "order_desk.api.main:app",
            "--host", host,
            "--port", port,
            "--reload"
        ], env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
