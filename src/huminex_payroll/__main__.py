"""Entry point for `python -m huminex_payroll`."""

import sys

from huminex_payroll.cli import main

if __name__ == "__main__":
    sys.exit(main())
