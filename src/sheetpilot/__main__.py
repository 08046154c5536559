"""Allow ``python -m sheetpilot``."""

from sheetpilot.cli import main

main()
