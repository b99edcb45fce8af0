import sys

from vuhe.cli import main

sys.exit(main())
