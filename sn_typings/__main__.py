"""
Entry point for running the generator as a module.

Usage: python -m sn_typings <command> [options]
"""

from sn_typings.cli import app

if __name__ == "__main__":
    app()
