#!/usr/bin/env python3
"""
AudioScribe Batch Processing Entry Point

Transcribes every given audio file (or every audio file in the given
directories) sequentially, writing each transcript next to its source.
"""

import sys
from audioscribe.batch import run_batch_processing

if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("AudioScribe requires Python 3.8 or later.\n")
        sys.exit(1)

    sys.exit(run_batch_processing())
