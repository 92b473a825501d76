"""
Entry point for the Fedora extraction tool.
"""

import sys

from fedora_migrator.cli import main

if __name__ == "__main__":
    sys.exit(main())
