from __future__ import annotations

import argparse

import uvicorn


def main() -> int:
    parser = argparse.ArgumentParser(description="Serve the Aim Dash session and rank-scale API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", dest="reload", action="store_true")
    parser.add_argument("--no-reload", dest="reload", action="store_false")
    parser.set_defaults(reload=False)
    args = parser.parse_args()

    uvicorn.run(
        "aimdash.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=["aimdash"] if args.reload else None,
        timeout_graceful_shutdown=0,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
