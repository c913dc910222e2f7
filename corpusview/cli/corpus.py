#!/usr/bin/env python3
"""Dispatch CLI for corpusview.

Discovers subcommands from sibling modules in the cli package.
Module names are converted to subcommand names by replacing underscores
with hyphens (e.g. export_manifest.py -> export-manifest).
"""

import importlib
import sys
from pathlib import Path

CLI_DIR = Path(__file__).resolve().parent
_SELF = Path(__file__).resolve().name


def _discover_commands() -> dict[str, str]:
    """Return {subcommand-name: module-name} for every .py file in cli/."""
    cmds: dict[str, str] = {}
    for p in sorted(CLI_DIR.glob("*.py")):
        if p.name.startswith("_") or p.name == _SELF:
            continue
        cmds[p.stem.replace("_", "-")] = f"{__package__ or 'corpusview.cli'}.{p.stem}"
    return cmds


def _describe(module_name: str) -> str:
    """First line of the subcommand module's docstring."""
    path = CLI_DIR / f"{module_name.rsplit('.', 1)[-1]}.py"
    try:
        src = path.read_text()
        mod = compile(src, str(path), "exec")
    except (OSError, SyntaxError):
        return ""
    if mod.co_consts and isinstance(mod.co_consts[0], str):
        return mod.co_consts[0].strip().split("\n")[0]
    return ""


def _print_usage(commands: dict[str, str]) -> None:
    print("usage: corpus <command> [args ...]\n")
    print("Available commands:")
    for name, module_name in commands.items():
        print(f"  {name:24s} {_describe(module_name)}")
    print()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    commands = _discover_commands()

    if not argv or argv[0] in ("-h", "--help"):
        _print_usage(commands)
        return 0 if argv else 1

    cmd = argv[0].replace("_", "-")
    if cmd not in commands:
        print(f"corpus: unknown command '{argv[0]}'\n", file=sys.stderr)
        _print_usage(commands)
        return 1

    module = importlib.import_module(commands[cmd])
    return module.main(argv[1:]) or 0


if __name__ == "__main__":
    sys.exit(main())
