import runpy
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parent
SERVE_SCRIPT = ROOT / "scripts" / "serve_files.py"


def main() -> None:
    original_argv = sys.argv[:]
    try:
        sys.argv = ["scripts/serve_files.py", *sys.argv[1:]]
        runpy.run_path(str(SERVE_SCRIPT), run_name="__main__")
    finally:
        sys.argv = original_argv


if __name__ == "__main__":
    main()
