#!/usr/bin/env python3
"""
AudioScribe Entry Point Script

Transcribes a single audio file and prints a JSON result.
"""

import sys
from audioscribe.cli import CLIHandler

if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("AudioScribe requires Python 3.8 or later.\n")
        sys.exit(1)

    cli = CLIHandler()
    sys.exit(cli.run())
