from __future__ import annotations

import os
import sys
from pathlib import Path

from dav_panel.cli import main


if __name__ == "__main__":
    # frozen builds keep .env and var/ next to the executable
    if getattr(sys, "frozen", False):
        os.chdir(Path(sys.executable).resolve().parent)
    main(sys.argv[1:])
