"""Run the forecast service: python -m apptelemetry."""

import sys

from apptelemetry.cli import main

sys.exit(main())
