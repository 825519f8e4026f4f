"""Run todoapi as ``python -m todoapi``."""

import sys

from .cli import main


sys.exit(main())
