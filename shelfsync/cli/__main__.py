"""
Entry point of `shelfsync` CLI when run as `python -m shelfsync.cli`.
"""

from .main import run

run()
