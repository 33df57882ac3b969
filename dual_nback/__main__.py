from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    If this module is executed as a script (``python dual_nback/__main__.py``),
    the package may not be discoverable by Python. This helper inserts the
    parent directory of the package into ``sys.path`` so that imports resolve
    correctly.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m dual_nback
    from .app import run  # type: ignore[attr-defined]
    from .logging_setup import setup_logging  # type: ignore[attr-defined]
except ImportError:
    # Works when executed as a script (VS Code “Run Python File”, absolute path, etc.)
    _ensure_repo_root_on_path()
    from dual_nback.app import run  # type: ignore[attr-defined]
    from dual_nback.logging_setup import setup_logging  # type: ignore[attr-defined]


def main(argv: list[str] | None = None) -> int:
    """Entry point for running the trainer from the command line."""
    parser = argparse.ArgumentParser(prog="dual_nback", description="Dual N-back trainer")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--db", type=Path, default=None, help="history database path")
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_file)
    return run(db_path=args.db)


if __name__ == "__main__":
    raise SystemExit(main())
