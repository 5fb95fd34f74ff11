import sys

from dcb_lending.cli import main

if __name__ == "__main__":
    sys.exit(main())
