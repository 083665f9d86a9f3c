"""Comment commands: parsing ``@queen /verb`` lines and executing them."""

from hive_queen.commands.handlers import CommandExecutor, CommandRequest, CommandResult, CommandStatus
from hive_queen.commands.parser import parse_command

__all__ = ["CommandExecutor", "CommandRequest", "CommandResult", "CommandStatus", "parse_command"]
