"""
Main entry point for running sockstun as a module.

Usage:
    python -m sockstun connect example.com 80
    python -m sockstun udp 8.8.8.8 53 hello
    python -m sockstun check
"""

from .cli import cli

if __name__ == "__main__":
    cli()
