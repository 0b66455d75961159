"""
Entry point for running dockersweep as a module.

Usage:
    python -m dockersweep [options]
"""

import sys
from dockersweep.cli import main

if __name__ == "__main__":
    sys.exit(main())
