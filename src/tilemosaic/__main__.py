"""Module entrypoint for `python -m tilemosaic`."""

from __future__ import annotations

from tilemosaic.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
