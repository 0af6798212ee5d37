"""Allow ``python -m geotrack`` to launch the tracker."""

from __future__ import annotations

import sys


def main() -> None:
    from geotrack import run

    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
