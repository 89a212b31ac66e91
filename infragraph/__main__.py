"""Allow ``python -m infragraph``."""

import sys

from infragraph.cli import main

if __name__ == "__main__":
    sys.exit(main())
