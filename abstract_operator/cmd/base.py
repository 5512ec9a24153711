"""
Shared interface of the abstract_operator subcommands
"""

# Standard
import abc
import argparse


class CmdBase(abc.ABC):
    """A subcommand registers its own parser and runs with the parsed args"""

    @abc.abstractmethod
    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Create the parser of this subcommand

        Args:
            subparsers:  argparse._SubParsersAction
                The subcommand group of the top level parser

        Returns:
            parser:  argparse.ArgumentParser
                The parser holding this subcommand's arguments
        """

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace):
        """Run the subcommand"""
