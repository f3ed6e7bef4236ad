"""Allow ``python -m crossgcc``."""

import sys

from crossgcc.cli import main

if __name__ == "__main__":
    sys.exit(main())
