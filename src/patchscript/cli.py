"""Command-line interface for patchscript."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from patchscript.errors import IncludeError, LexError, MacroError, ParseError, PatchScriptError
from patchscript.preprocessor import DEFAULT_MAX_INCLUDE_DEPTH, DEFAULT_MAX_MACRO_DEPTH

CONFIG_FILENAME = "patchscript.toml"


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    defines: dict[str, str]
    include_paths: list[Path]
    max_macro_depth: int
    max_include_depth: int
    tokens: bool
    watch: bool
    debug: bool
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="patchscript",
        description="Doom patch script compiler",
    )
    p.add_argument("input", help="Input patch script")
    p.add_argument("-o", "--output", help="Output JSON file (default: stdout)")
    p.add_argument(
        "-D",
        "--define",
        action="append",
        default=[],
        metavar="NAME[=VALUE]",
        help="Predefine a macro (repeatable)",
    )
    p.add_argument(
        "-I",
        "--include-path",
        action="append",
        default=[],
        metavar="DIR",
        help="Extra include search directory (repeatable)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help=f"Config file (default: auto-discover {CONFIG_FILENAME})",
    )
    p.add_argument(
        "--max-macro-depth",
        type=int,
        default=None,
        metavar="N",
        help=f"Macro expansion depth limit (default: {DEFAULT_MAX_MACRO_DEPTH})",
    )
    p.add_argument(
        "--max-include-depth",
        type=int,
        default=None,
        metavar="N",
        help=f"Include nesting limit (default: {DEFAULT_MAX_INCLUDE_DEPTH})",
    )
    p.add_argument("--tokens", action="store_true", help="Print the preprocessed tokens and stop")
    p.add_argument("--watch", action="store_true", help="Watch for changes and recompile")
    p.add_argument("--debug", action="store_true", help="Dump the parsed patch to stderr")
    p.add_argument("-v", "--verbose", action="store_true", help="Log preprocessing steps")
    return p


def parse_define_arg(s: str) -> tuple[str, str]:
    """Parse NAME or NAME=VALUE into (name, value); a bare NAME defines it as empty."""
    name, _, value = s.partition("=")
    if not name:
        raise argparse.ArgumentTypeError(f"invalid define (expected NAME[=VALUE]): {s}")
    return name, value


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / CONFIG_FILENAME

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    # Defines: config < CLI
    defines: dict[str, str] = {}
    cfg_defines = config.get("defines")
    if isinstance(cfg_defines, dict):
        for k, v in cfg_defines.items():
            defines[str(k)] = str(v)
    for raw in args.define:
        name, value = parse_define_arg(raw)
        defines[name] = value

    # Include paths: config (relative to the config's directory) < CLI
    include_paths: list[Path] = []
    cfg_include = config.get("include")
    if isinstance(cfg_include, dict):
        cfg_paths = cfg_include.get("paths")
        if isinstance(cfg_paths, list):
            base = config_path.parent if config_path is not None else input_dir
            include_paths.extend(base / str(p) for p in cfg_paths)
    include_paths.extend(Path(p) for p in args.include_path)

    # Depth limits: config < CLI
    max_macro_depth = DEFAULT_MAX_MACRO_DEPTH
    max_include_depth = DEFAULT_MAX_INCLUDE_DEPTH
    cfg_pre = config.get("preprocessor")
    if isinstance(cfg_pre, dict):
        if isinstance(cfg_pre.get("max_macro_depth"), int):
            max_macro_depth = cfg_pre["max_macro_depth"]
        if isinstance(cfg_pre.get("max_include_depth"), int):
            max_include_depth = cfg_pre["max_include_depth"]
    if args.max_macro_depth is not None:
        max_macro_depth = args.max_macro_depth
    if args.max_include_depth is not None:
        max_include_depth = args.max_include_depth

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        defines=defines,
        include_paths=include_paths,
        max_macro_depth=max_macro_depth,
        max_include_depth=max_include_depth,
        tokens=args.tokens,
        watch=args.watch,
        debug=args.debug,
        verbose=args.verbose,
    )


def compile_file(options: CliOptions) -> str:
    """Read, preprocess, and parse a patch script, returning its JSON rendering."""
    from patchscript.debug import dump_patch
    from patchscript.grammar import parse_patch_file

    patch = parse_patch_file(
        options.input_file,
        include_paths=options.include_paths,
        defines=options.defines,
        max_macro_depth=options.max_macro_depth,
        max_include_depth=options.max_include_depth,
    )

    if options.debug:
        dump_patch(patch)

    return json.dumps(patch.to_dict(), indent=2) + "\n"


def list_tokens(options: CliOptions) -> str:
    """Preprocess the input and list its tokens, one per line."""
    from patchscript.debug import format_token
    from patchscript.patch import PATCH_KERNEL
    from patchscript.preprocessor import FileIncluder, Preprocessor

    source = options.input_file.read_text(encoding="utf-8")
    preprocessor = Preprocessor(
        PATCH_KERNEL,
        source,
        str(options.input_file),
        includer=FileIncluder(options.include_paths),
        max_macro_depth=options.max_macro_depth,
        max_include_depth=options.max_include_depth,
    )
    for name, value in options.defines.items():
        preprocessor.define(name, value)
    return "".join(format_token(tok) + "\n" for tok in preprocessor)


def report(exc: PatchScriptError, source_for) -> None:
    """Print every diagnostic carried by ``exc`` with its source excerpt."""
    for diag in exc.diagnostics:
        source = source_for(diag.stream_name)
        if source is None:
            print(f"error: {diag.format()}", file=sys.stderr)
        else:
            print(diag.render(source), file=sys.stderr)


def _read_source(stream_name: str) -> str | None:
    try:
        return Path(stream_name).read_text(encoding="utf-8")
    except (OSError, ValueError):
        return None


def _write(options: CliOptions, text: str) -> None:
    if options.output_file:
        options.output_file.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)
        sys.stdout.flush()


def watch_loop(options: CliOptions) -> None:
    """Poll input file for changes, recompile on each modification."""
    last_mtime = 0.0
    print(f"Watching {options.input_file} for changes...", file=sys.stderr)
    try:
        while True:
            try:
                mtime = options.input_file.stat().st_mtime
            except OSError:
                time.sleep(0.5)
                continue
            if mtime != last_mtime:
                last_mtime = mtime
                try:
                    _write(options, compile_file(options))
                    print(f"Compiled {options.input_file}", file=sys.stderr)
                except PatchScriptError as exc:
                    report(exc, _read_source)
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except tomllib.TOMLDecodeError as exc:
        print(f"error: invalid config file: {exc}", file=sys.stderr)
        return 2

    if options.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if options.watch:
        watch_loop(options)
        return 0

    try:
        text = list_tokens(options) if options.tokens else compile_file(options)
    except (LexError, ParseError) as exc:
        report(exc, _read_source)
        return 1
    except (MacroError, IncludeError) as exc:
        report(exc, _read_source)
        return 2
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    _write(options, text)
    return 0
