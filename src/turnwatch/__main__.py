"""
Run the tracker.

Usage:
    python -m turnwatch [--backend sqlite] [--headless]
"""

from .interface.cli import main

if __name__ == "__main__":
    main()
