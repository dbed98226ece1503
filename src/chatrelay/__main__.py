import sys

from chatrelay.main import main

sys.exit(main())
