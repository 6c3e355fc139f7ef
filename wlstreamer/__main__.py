import sys

from wlstreamer.run import main

sys.exit(main())
