"""
Subcommands of the abstract_operator command line
"""

# Local
from .base import CmdBase
from .run_operator_cmd import RunOperatorCmd
