"""Entry point for `python -m restartinfo`.

Usage:
    python -m restartinfo
    uv run python -m restartinfo
"""

from __future__ import annotations

import asyncio

from restartinfo.app import main

asyncio.run(main())
