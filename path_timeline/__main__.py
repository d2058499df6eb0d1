"""Module entry point: python -m path_timeline ..."""

from __future__ import annotations

from path_timeline.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
