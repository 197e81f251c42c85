"""Allow ``python -m soql_agent``."""

import sys

from soql_agent.cli import main

sys.exit(main())
