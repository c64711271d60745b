import sys

from .core.main import main

sys.exit(main())
