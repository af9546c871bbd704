# Entry point for `python -m mcpdoctor`
import sys

from mcpdoctor.cli import main

if __name__ == "__main__":
    sys.exit(main())
