"""Entry point for `python -m tileflip` command."""

import sys

from tileflip.cli.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
