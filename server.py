import sys
from ftpd.cli import main

if __name__ == "__main__":
    sys.exit(main())
