"""Run the CLI with `python -m blocklist_baker`."""

import sys

from .baker import main

if __name__ == "__main__":
    sys.exit(main())
