import sys

from booksite.cli import main

raise SystemExit(main(sys.argv[1:]))
