import sys

from vitamink.cli import main

sys.exit(main())
