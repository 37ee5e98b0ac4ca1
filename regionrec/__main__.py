#!/usr/bin/env python3
"""Entry point for running regionrec as a module.

This allows the package to be invoked with:
    python -m regionrec [action] [options]
"""

import sys

from regionrec.cli import main

if __name__ == "__main__":
    sys.exit(main())
