#!/usr/bin/env python3
"""Run the registry CLI from a source checkout: python python/main.py [command]"""

import sys

from registry_cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
