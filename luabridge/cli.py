from __future__ import annotations

import argparse
import sys
from typing import Optional

from .errors import LuaError
from .logging import configure_logging, default_level
from .state import LuaState


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="luabridge", description="Run Lua scripts through the value bridge")
    parser.add_argument("script", nargs="?", help="Path to Lua script (.lua)")
    parser.add_argument("-e", "--execute", dest="inline", help="Execute Lua code string")
    parser.add_argument("--no-stdlib", action="store_true", help="Do not open the base libraries")
    parser.add_argument("--print-results", action="store_true", help="Print the values returned by the chunk")
    parser.add_argument("--log-level", default=default_level(), help="Logging level (default: %(default)s)")
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level)
    if args.inline and args.script:
        parser.error("cannot use script path and --execute together")
    if not args.inline and not args.script:
        parser.error("missing script or --execute")

    with LuaState(load_stdlib=not args.no_stdlib) as state:
        try:
            if args.inline:
                results = state.do_string_mult_ret(args.inline, "<inline>")
            else:
                results = state.do_file_mult_ret(args.script)
        except LuaError as exc:
            print(f"Lua execution failed: {exc}", file=sys.stderr)
            return 1
        if args.print_results:
            for value in results:
                print(value)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
