import sys

from runtime_bridge.cli import main

sys.exit(main())
