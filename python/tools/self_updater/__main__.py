# __main__.py
"""
Command line entry point for Self Updater.
This allows running the module as: python -m self_updater
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
