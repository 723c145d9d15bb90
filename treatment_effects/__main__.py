import sys

from treatment_effects.cli import main

if __name__ == "__main__":
    sys.exit(main())
