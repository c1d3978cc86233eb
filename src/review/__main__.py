"""
Entry point for running the review CLI as a module.

Usage:
    python -m src.review study
    python -m src.review stats
    python -m src.review --help
"""
from .cli import main

if __name__ == "__main__":
    main()
