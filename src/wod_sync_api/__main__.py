"""
Entry point for running the command line with `python -m wod_sync_api`.
"""
import sys

from wod_sync_api.cli import main

if __name__ == "__main__":
    sys.exit(main())
