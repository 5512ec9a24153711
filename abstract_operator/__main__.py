#!/usr/bin/env python
"""
Command line entrypoint of abstract_operator. Every library config key is
also a --<key> flag of each subcommand.
"""

# Standard
from typing import Dict, List, Optional
import argparse

# First Party
import aconfig
import alog

# Local
from .cmd import CmdBase, RunOperatorCmd
from .config import library_config
from .log_format import OperatorJsonFormatter

log = alog.use_channel("MAIN")

# Subcommand used when the first argument names none
DEFAULT_COMMAND = "run"

## Library Config Flags ########################################################


def add_library_config_args(
    parser,
    config_obj: Optional[aconfig.Config] = None,
    path: Optional[List[str]] = None,
) -> Dict[str, List[str]]:
    """Add a flag for every leaf of the library config. Nested keys become
    dotted flags (--section.key).

    Returns:
        setters:  Dict[str, List[str]]
            The config path of each flag, by argparse dest
    """
    config_obj = library_config if config_obj is None else config_obj
    path = path or []
    setters = {}
    for key, default in config_obj.items():
        key_path = path + [key]
        if isinstance(default, aconfig.AttributeAccessDict):
            setters.update(add_library_config_args(parser, default, key_path))
            continue

        flag = "--" + ".".join(key_path)
        if flag in parser._option_string_actions:  # pylint: disable=protected-access
            continue
        dest = "_".join(key_path)
        kwargs = {"dest": dest, "default": default, "help": f"Override {flag[2:]}"}
        if isinstance(default, bool):
            kwargs["action"] = "store_true"
        elif isinstance(default, list):
            kwargs["nargs"] = "*"
        elif default is not None:
            kwargs["type"] = type(default)
        parser.add_argument(flag, **kwargs)
        setters[dest] = key_path
    return setters


def update_library_config(args: argparse.Namespace, setters: Dict[str, List[str]]):
    """Write the parsed flag values back into the library config"""
    for dest, key_path in setters.items():
        section = library_config
        for key in key_path[:-1]:
            section = section[key]
        section[key_path[-1]] = getattr(args, dest)


def add_command(
    subparsers: argparse._SubParsersAction,
    cmd: CmdBase,
) -> argparse.ArgumentParser:
    """Register a subcommand along with the library config flags"""
    parser = cmd.add_subparser(subparsers)
    parser.set_defaults(func=cmd.cmd)
    return parser


## Main ########################################################################


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    run_parser = add_command(subparsers, RunOperatorCmd())
    setters = add_library_config_args(
        run_parser.add_argument_group("Library Configuration")
    )

    # Without a known subcommand, the arguments belong to the default one
    command_parser = argparse.ArgumentParser(add_help=False)
    command_parser.add_argument("command", nargs="?")
    command, _ = command_parser.parse_known_args()
    if command.command in subparsers.choices:
        args = parser.parse_args()
    else:
        log.debug("No subcommand given, running %s", DEFAULT_COMMAND)
        args = subparsers.choices[DEFAULT_COMMAND].parse_args()

    update_library_config(args, setters)
    alog.configure(
        default_level=library_config.log_level,
        filters=library_config.log_filters,
        formatter=OperatorJsonFormatter() if library_config.log_json else "pretty",
        thread_id=library_config.log_thread_id,
    )
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()
