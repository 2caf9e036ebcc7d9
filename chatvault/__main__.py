import sys

from chatvault.cli import main

sys.exit(main())
