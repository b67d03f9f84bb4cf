import sys

from hwmon_lib.cli import main

sys.exit(main())
