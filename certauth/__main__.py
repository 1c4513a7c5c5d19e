"""CERTAUTH CLI entry point: python -m certauth"""

from __future__ import annotations

import sys

from certauth.cli import main

if __name__ == "__main__":
    sys.exit(main())
