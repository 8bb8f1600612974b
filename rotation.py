#!/usr/bin/env python3
"""
Unified entry point for the crop rotation advisor.

Usage:
    python rotation.py                                  # Default: terminal advisor
    python rotation.py --plots yellow/red blue/red      # Terminal, custom plots
    python rotation.py --ui web                         # JSON server (Flask)
    python rotation.py --ui web --port 8080             # Web on custom port
    python rotation.py --log-level debug --depth 4      # Show planner diagnostics

Individual entry points (advisor.py, web.py) still work independently.
"""
import argparse
import logging
import sys


def main():
    # Pre-parse just the shared flags, pass everything else through
    parser = argparse.ArgumentParser(
        description="Crop rotation advisor — terminal or web",
        add_help=False,
    )
    parser.add_argument("--ui", choices=["cli", "web"], default="cli",
                        help="Interface: cli (default), web (JSON server)")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"], default="warning",
                        help="Logging level (default: warning)")
    args, remaining = parser.parse_known_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper()),
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    if args.ui == "cli":
        from advisor import main as run_cli
        run_cli(remaining)

    elif args.ui == "web":
        sys.argv = [sys.argv[0]] + remaining
        from web import main as run_web
        run_web()


if __name__ == "__main__":
    main()
