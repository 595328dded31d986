"""Run script for the Boss Respawn Tracker."""
import sys
from pathlib import Path

# Add src to path so the package runs without being installed
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from boss_respawn.main import main

if __name__ == "__main__":
    sys.exit(main())
