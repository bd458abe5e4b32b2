"""Allow ``python -m psrules``."""

from psrules.main import main

if __name__ == "__main__":
    raise SystemExit(main())
