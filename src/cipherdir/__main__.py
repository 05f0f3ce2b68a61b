import sys
from cipherdir.cli import main

sys.exit(main())
