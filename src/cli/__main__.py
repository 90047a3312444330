"""Module entry point for `python -m src.cli`."""

from src.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
