#!/usr/bin/env python
"""
The main module provides the executable entrypoint for memcached_operator
"""

# Standard
from typing import Dict, List, Tuple
import argparse

# First Party
import aconfig
import alog

# Local
from . import config
from .cmd import CmdBase, RunOperatorCmd, ServeWebhookCmd
from .config import library_config
from .log_format import MemcachedJsonFormatter

## Constants ###################################################################

log = alog.use_channel("MAIN")

## Helpers #####################################################################


def _config_leaves(config_obj, path):
    """Yield (path, value) for every non-section value of a config"""
    for key, val in config_obj.items():
        if isinstance(val, aconfig.AttributeAccessDict):
            yield from _config_leaves(val, path + [key])
        else:
            yield path + [key], val


def add_library_config_args(parser, config_obj=None, path=None):
    """Add a --dotted.key flag for every library config value that the parser
    does not already have. Returns the argparse dest name of each added flag
    mapped to its path in the config.
    """
    setters = {}
    for key_path, default in _config_leaves(config_obj or library_config, path or []):
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


def update_library_config(args, setters: Dict[str, List[str]]):
    """Write the parsed flag values back into the library config"""
    for dest, key_path in setters.items():
        *sections, key = key_path
        section = library_config
        for name in sections:
            section = section[name]
        section[key] = getattr(args, dest)


def add_command(
    subparsers: argparse._SubParsersAction,
    cmd: CmdBase,
) -> Tuple[argparse.ArgumentParser, Dict[str, List[str]]]:
    """Add the subparser and set up the default fun call"""
    parser = cmd.add_subparser(subparsers)
    parser.set_defaults(func=cmd.cmd)
    library_args = parser.add_argument_group("Library Configuration")
    library_config_setters = add_library_config_args(library_args)
    return parser, library_config_setters


## Main ########################################################################


def main(argv=None):
    """The main module provides the executable entrypoint for memcached_operator"""
    parser = argparse.ArgumentParser(description=__doc__)

    # Add the subcommands
    subparsers = parser.add_subparsers(help="Available commands", dest="command")
    run_operator_parser, library_config_setters = add_command(
        subparsers, RunOperatorCmd()
    )
    add_command(subparsers, ServeWebhookCmd())

    # Use a preliminary parser to check for the presence of a command and fall
    # back to the default command if not found
    check_parser = argparse.ArgumentParser(add_help=False)
    check_parser.add_argument("command", nargs="?")
    check_args, _ = check_parser.parse_known_args(argv)
    if check_args.command not in subparsers.choices:
        args = run_operator_parser.parse_args(argv)
    else:
        args = parser.parse_args(argv)

    # Provide overrides to the library configs
    update_library_config(args, library_config_setters)

    # Reconfigure logging
    alog.configure(
        default_level=config.log_level,
        filters=config.log_filters,
        formatter=MemcachedJsonFormatter() if config.log_json else "pretty",
        thread_id=config.log_thread_id,
    )

    # Run the command's function
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()
