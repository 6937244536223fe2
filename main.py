import sys
from pathlib import Path

# Ensure the src directory is in the Python path
project_root = Path(__file__).parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from journey_refiner.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
