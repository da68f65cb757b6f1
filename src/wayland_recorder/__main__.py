"""Allow ``python -m wayland_recorder``."""

import sys

from .cli import main

sys.exit(main())
