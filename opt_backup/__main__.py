import sys

from opt_backup.main import main

sys.exit(main())
