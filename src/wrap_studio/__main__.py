import sys

from wrap_studio.cli import main

if __name__ == "__main__":
    sys.exit(main())
