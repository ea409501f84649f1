"""rdump: rdump/__main__.py.

Snapshot-consistent backups of a running machine, coordinating LVM2 and
ZFS snapshots with borg and rsure.
"""

import sys

from .cli.dispatcher import main

if __name__ == "__main__":
    sys.exit(main())
