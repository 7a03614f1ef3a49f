#!/usr/bin/env python3
"""Child that runs setup() without configuring logging first.

Usage:
    python -m bare_child
"""

from __future__ import annotations

from fork_harness import setup


def main() -> None:
    setup()
    print("bare done", flush=True)


if __name__ == "__main__":
    main()
