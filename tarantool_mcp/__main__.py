"""Module entrypoint to run `python -m tarantool_mcp`."""

from __future__ import annotations

from .server import main

if __name__ == "__main__":
    main()
