import sys

from mintforge.cli import main

sys.exit(main())
