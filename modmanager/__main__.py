"""Allow running with python -m modmanager."""

import sys

from .cli import main

sys.exit(main())
