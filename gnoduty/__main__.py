import sys

from gnoduty.cli import main

sys.exit(main())
