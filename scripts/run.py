# Main script
"""Run devsrv from a source checkout"""

import sys
from pathlib import Path

# Add the devsrv package to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from devsrv.cli import main

if __name__ == '__main__':
    main()
