#!/usr/bin/env python3
"""
Convenience script to run the demo pipeline with common settings.
"""

import sys
from paged_enricher.cli import app

def main():
    # Default arguments for common use case
    default_args = [
        "demo",
        "--total", "100",
        "--batch-size", "5",
        "--max-queue-size", "15",
    ]

    # Use command line args if provided, otherwise use defaults
    if len(sys.argv) > 1:
        app()
    else:
        print("Running with default settings...")
        print(f"Command: paged-enricher {' '.join(default_args)}")
        sys.argv.extend(default_args)
        app()

if __name__ == "__main__":
    main()
