"""Entry point for running the package as a module."""

import sys

from detroit_blocks.cli import main

if __name__ == "__main__":
    sys.exit(main())
