import sys

from runlens.main import main

sys.exit(main())
