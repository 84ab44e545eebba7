"""CLI entry point for mediaforge.cli module.

Enables execution via: python -m mediaforge.cli
"""

from mediaforge.cli.reconcile import main

if __name__ == "__main__":
    raise SystemExit(main())
