"""fork-harness 入口点。

支持: python -m fork_harness
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
