"""storyのコマンドラインインターフェース"""

from story.cli.main import StoryCLI
from story.cli.parser import ArgumentParser, ParsedCommand, ValidationResult

__all__ = [
    "ArgumentParser",
    "ParsedCommand",
    "StoryCLI",
    "ValidationResult",
]
