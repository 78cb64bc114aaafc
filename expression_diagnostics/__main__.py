import sys

from expression_diagnostics.cli import main

sys.exit(main())
