"""
コマンド解析のプロパティテスト
"""

import unittest

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from story.cli.parser import VALID_COMMANDS, VALID_FLOWS, ArgumentParser

plain_text = st.text(
    alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="-="),
    min_size=1,
    max_size=30,
)


class TestCommandParsingProperty(unittest.TestCase):
    """
    For any コマンド文字列に対して、有効なコマンドであればバリデーションを通過し、
    無効なコマンドであればエラーメッセージが生成される
    """

    def setUp(self):
        """テストの準備"""
        self.parser = ArgumentParser()

    @given(command=st.sampled_from(sorted(VALID_COMMANDS)), args=st.lists(plain_text, max_size=4))
    @settings(max_examples=100)
    def test_valid_commands_keep_positional_args(self, command, args):
        """有効なコマンドはバリデーションを通過し、位置引数は順序通り保持される"""
        result = self.parser.parse([command, *args])
        self.assertEqual(result.command, command)
        self.assertEqual(result.args, args)
        self.assertTrue(self.parser.validate(result).is_valid)

    @given(command=plain_text)
    @settings(max_examples=100)
    def test_unknown_commands_are_rejected(self, command):
        """不明なコマンドはバリデーションで拒否される"""
        assume(command not in VALID_COMMANDS)
        validation = self.parser.validate(self.parser.parse([command]))
        self.assertFalse(validation.is_valid)
        self.assertIn(command, validation.errors[0])

    @given(port=st.integers(min_value=1, max_value=65535))
    @settings(max_examples=100)
    def test_ports_in_range_are_accepted(self, port):
        """範囲内のポートは --port / --port= の両形式で受け付けられる"""
        for argv in (["init", "--port", str(port)], ["init", f"--port={port}"]):
            result = self.parser.parse(argv)
            self.assertEqual(int(result.options["port"]), port)
            self.assertTrue(self.parser.validate(result).is_valid)

    @given(port=st.one_of(st.integers(max_value=0), st.integers(min_value=65536)))
    @settings(max_examples=100)
    def test_ports_out_of_range_are_rejected(self, port):
        """範囲外のポートは拒否される"""
        result = self.parser.parse(["init", f"--port={port}"])
        self.assertFalse(self.parser.validate(result).is_valid)

    @given(flow=st.sampled_from(VALID_FLOWS), upper=st.booleans())
    def test_flow_is_case_insensitive(self, flow, upper):
        """フロー名は大文字小文字を区別しない"""
        value = flow.upper() if upper else flow
        result = self.parser.parse(["init", "--flow", value])
        self.assertEqual(result.options["flow"], flow)
        self.assertTrue(self.parser.validate(result).is_valid)


if __name__ == "__main__":
    unittest.main()
