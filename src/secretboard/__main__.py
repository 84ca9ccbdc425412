"""Secretboard entrypoint.

Run with:
  python -m secretboard serve
"""

from secretboard.cli.main import main

if __name__ == "__main__":
    main()
