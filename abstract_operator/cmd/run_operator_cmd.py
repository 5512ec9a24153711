"""
Run every operator handler found in a python module
"""
# Standard
from typing import Iterator, List, Optional, Type
import argparse
import glob
import importlib
import inspect
import os
import signal

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config
from ..entrypoint import OperatorEntrypoint, make_deploy_manager_factory
from ..exceptions import assert_config
from ..operator import OperatorHandler
from .base import CmdBase

log = alog.use_channel("MAIN")

# Files read from --resource_dir
RESOURCE_FILE_PATTERNS = ["*.yaml", "*.yml"]


class RunOperatorCmd(CmdBase):
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser("run", help=__doc__)
        operator_args = parser.add_argument_group("Operator Module")
        operator_args.add_argument(
            "--module_name",
            "-m",
            required=True,
            help="Importable module whose OperatorHandler classes are run",
        )
        operator_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help="Directory of yaml resources preloaded into the dry run cluster",
        )
        return parser

    def cmd(self, args: argparse.Namespace):
        if args.resource_dir is not None:
            assert_config(config.dry_run, "--resource_dir needs --dry_run")
            assert_config(
                os.path.isdir(args.resource_dir),
                f"--resource_dir {args.resource_dir} is not a directory",
            )

        entrypoint = OperatorEntrypoint(
            self._get_handler_types(args.module_name),
            deploy_manager_factory=make_deploy_manager_factory(
                self._parse_resource_dir(args.resource_dir)
            ),
        )
        for signum in [signal.SIGINT, signal.SIGTERM]:
            signal.signal(signum, lambda *_: entrypoint.stop())

        log.info("Starting the operators of %s", args.module_name)
        if not entrypoint.start():
            log.warning("Some operators did not start")
        if not entrypoint.operators:
            log.error("No operator is running in %s", args.module_name)
            entrypoint.stop()
            return

        entrypoint.wait()
        log.info("Operators of %s stopped", args.module_name)

    ## Impl ##

    @staticmethod
    def _get_handler_types(module_name: str) -> List[Type[OperatorHandler]]:
        """Collect the concrete handler classes with a definition from the
        module namespace
        """
        module = importlib.import_module(module_name)
        handler_types = [
            member
            for _, member in inspect.getmembers(module, inspect.isclass)
            if issubclass(member, OperatorHandler)
            and not inspect.isabstract(member)
            and member.definition is not None
        ]
        log.debug2("Handlers in %s: %s", module_name, handler_types)
        assert_config(handler_types, f"No OperatorHandlers found in [{module_name}]")
        return handler_types

    @classmethod
    def _parse_resource_dir(cls, resource_dir: Optional[str]) -> List[dict]:
        if resource_dir is None:
            return []
        return [
            resource
            for path in cls._resource_files(resource_dir)
            for resource in cls._load_documents(path)
        ]

    @staticmethod
    def _resource_files(resource_dir: str) -> List[str]:
        return sorted(
            path
            for pattern in RESOURCE_FILE_PATTERNS
            for path in glob.glob(os.path.join(resource_dir, pattern))
        )

    @staticmethod
    def _load_documents(path: str) -> Iterator[dict]:
        log.debug3("Loading resources from %s", path)
        with open(path, encoding="utf-8") as handle:
            yield from filter(None, yaml.safe_load_all(handle))
