"""
Convenience entry point for running campslots directly.

Usage: python -m campslots [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
