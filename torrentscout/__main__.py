import sys

from torrentscout.cli import main

sys.exit(main())
