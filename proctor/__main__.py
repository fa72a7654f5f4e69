"""Allow `python -m proctor exam.json`."""

import sys

from .console import main

sys.exit(main())
