"""
コマンドライン引数の解析

コマンド解析とバリデーション機能を提供
"""

from dataclasses import dataclass
from typing import Any, Dict, List


# 有効なコマンド一覧
VALID_COMMANDS = {"init", "auth", "info", "show", "post", "edit", "logout", "help", "version"}

VALID_FLOWS = ("code", "implicit")

# 値を1つ取るオプション（フラグ → options のキー）
VALUE_OPTIONS = {
    "--config": "config",
    "--blog": "blog",
    "--title": "title",
    "--content": "content",
    "--client-id": "client_id",
    "--secret": "secret",
    "--port": "port",
    "--path": "path",
    "--flow": "flow",
}

# 値を取らないオプション
FLAG_OPTIONS = {
    "-h": "help",
    "--help": "help",
    "-v": "version",
    "--version": "version",
    "--config-check": "config_check",
    "-n": "dry_run",
    "--dry-run": "dry_run",
    "--no-browser": "no_browser",
    "--verbose": "verbose",
}


@dataclass
class ParsedCommand:
    """解析済みコマンド

    Attributes:
        command: コマンド名
        args: コマンド引数
        options: オプション辞書
        missing_values: 値が指定されなかったオプション
    """

    command: str
    args: List[str]
    options: Dict[str, Any]
    missing_values: List[str]


@dataclass
class ValidationResult:
    """バリデーション結果

    Attributes:
        is_valid: 有効かどうか
        errors: エラーメッセージのリスト
    """

    is_valid: bool
    errors: List[str]


class ArgumentParser:
    """コマンドライン引数の解析"""

    def parse(self, argv: List[str]) -> ParsedCommand:
        """引数を解析してParsedCommandを返す

        ``--name=value`` 形式と ``--name value`` 形式の両方を受け付ける。

        Args:
            argv: コマンドライン引数リスト

        Returns:
            ParsedCommand: 解析結果
        """
        options: Dict[str, Any] = {}
        args: List[str] = []
        missing: List[str] = []
        command: str = ""

        i = 0
        while i < len(argv):
            arg = argv[i]

            # 引数の終端
            if arg == "--":
                args.extend(argv[i + 1:])
                break

            if arg in FLAG_OPTIONS:
                options[FLAG_OPTIONS[arg]] = True
                i += 1
                continue

            name, sep, inline_value = arg.partition("=")
            if name in VALUE_OPTIONS:
                key = VALUE_OPTIONS[name]
                if sep:
                    options[key] = inline_value
                    i += 1
                    continue
                if i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                    options[key] = argv[i + 1]
                    i += 2
                    continue
                missing.append(name)
                i += 1
                continue

            # コマンドまたは引数
            if not command and not arg.startswith("-"):
                command = arg
            elif not arg.startswith("-") or arg == "-":
                args.append(arg)

            i += 1

        if "flow" in options:
            options["flow"] = str(options["flow"]).lower()

        return ParsedCommand(
            command=command,
            args=args,
            options=options,
            missing_values=missing,
        )

    def validate(self, parsed: ParsedCommand) -> ValidationResult:
        """解析結果の妥当性を検証

        Args:
            parsed: 解析済みコマンド

        Returns:
            ValidationResult: バリデーション結果
        """
        errors: List[str] = []

        # ヘルプ・バージョンオプションは常に有効
        if (
            parsed.options.get("help")
            or parsed.options.get("version")
            or parsed.options.get("config_check")
        ):
            return ValidationResult(is_valid=True, errors=[])

        # コマンドが空の場合
        if not parsed.command:
            errors.append("Command is required. Use --help for usage information.")
            return ValidationResult(is_valid=False, errors=errors)

        # 不明なコマンドの場合
        if parsed.command not in VALID_COMMANDS:
            errors.append(
                f"Unknown command: '{parsed.command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}"
            )
            return ValidationResult(is_valid=False, errors=errors)

        for name in parsed.missing_values:
            errors.append(f"Option {name} requires a value.")

        port = parsed.options.get("port")
        if port is not None:
            try:
                port_number = int(port)
            except (TypeError, ValueError):
                errors.append(f"Invalid port: '{port}'.")
            else:
                if not 1 <= port_number <= 65535:
                    errors.append(f"Port out of range: {port_number}.")

        flow = parsed.options.get("flow")
        if flow is not None and flow not in VALID_FLOWS:
            errors.append(f"Invalid flow: '{flow}'. Available flows: {', '.join(VALID_FLOWS)}")

        return ValidationResult(is_valid=not errors, errors=errors)
