"""python -m ollamon"""

import sys

from ollamon.cli import main

sys.exit(main())
