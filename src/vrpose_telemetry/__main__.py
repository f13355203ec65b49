"""
Main entry point for running vrpose-telemetry as a module.

This allows the package to be executed with:
    python -m vrpose_telemetry send
"""

from .cli import cli_main

if __name__ == "__main__":
    cli_main()
