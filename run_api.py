#!/usr/bin/env python3
"""
Run the FastAPI server

Usage:
    python run_api.py [--host HOST] [--port PORT] [--reload] [--log-level LEVEL]

Local examples:
    python run_api.py
    python run_api.py --port 8080
    python run_api.py --reload  # For development
"""
import argparse
import uvicorn

from query_analyser.logger import setup_logging


def main():
    parser = argparse.ArgumentParser(description="Run the PostgreSQL Query Analyser API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--log-level", default="INFO", help="Analyser log level (default: INFO)")

    args = parser.parse_args()
    setup_logging(args.log_level)

    print("Starting PostgreSQL Query Analyser API")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    print()
    print(f"API documentation available at: http://{args.host}:{args.port}/docs")
    print()

    uvicorn.run(
        "query_analyser.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
