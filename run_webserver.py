"""
Run Webserver - Startup Script
Server launcher for the fingerscan analysis API.
"""

import argparse

from fingerscan.webserver.config import HOST, PORT_HTTP, VERBOSE


def main():
    """Start server."""
    parser = argparse.ArgumentParser(description="Fingerscan WebServer")
    parser.add_argument("--host", default=HOST, help="Server host")
    parser.add_argument("--port", type=int, default=PORT_HTTP, help="Server port")
    parser.add_argument("--workers", type=int, help="Number of uvicorn workers")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes (development)")

    args = parser.parse_args()

    print()
    print("=" * 70)
    print("STARTING FINGERSCAN WEBSERVER")
    print("=" * 70)
    print()

    import uvicorn

    print(f"Server starting on {args.host}:{args.port}")
    print(f"   Workers: {args.workers or 1}")
    print()
    print(f"API Docs: http://localhost:{args.port}/docs")
    print(f"Health:   http://localhost:{args.port}/health")
    print()
    print("Press CTRL+C to stop")
    print("=" * 70)
    print()

    try:
        uvicorn.run(
            "fingerscan.webserver.server:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=None if args.reload else (args.workers or 1),
            log_level="info" if VERBOSE else "warning"
        )
    except KeyboardInterrupt:
        print("\n\nShutting down...")


if __name__ == "__main__":
    main()
