"""Allow running the CLI with ``python -m history_cleanup``."""

import sys

from history_cleanup.cli import main

sys.exit(main())
