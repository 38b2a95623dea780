"""CLI 入口模块 -- python -m todocore <command>"""

import asyncio
import sys

from .cli import run_cli
from .logging_config import setup_logging


def main() -> None:
    """CLI 主入口"""
    setup_logging()
    sys.exit(asyncio.run(run_cli(sys.argv[1:])))


if __name__ == "__main__":
    main()
