import sys

from open_funding.cli import main

sys.exit(main())
