"""Silent Process Runner entry point.

Supports: python -m silent_process_runner
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
