import sys

from pkgforge.cli import main

sys.exit(main())
