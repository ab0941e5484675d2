from __future__ import annotations

import unittest

from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_channel_id_token
from misc.commands.arg_parsing import parse_kv
from misc.commands.arg_parsing import parse_page_args
from misc.commands.arg_parsing import parse_user_token
from misc.commands.arg_parsing import split_pipe


class ArgParsingTests(unittest.TestCase):
    def test_user_token_accepts_mentions_and_raw_ids(self):
        self.assertEqual(parse_user_token("<@123456789>"), "123456789")
        self.assertEqual(parse_user_token("<@!123456789>"), "123456789")
        self.assertEqual(parse_user_token("123456789"), "123456789")
        self.assertIsNone(parse_user_token("alice"))

    def test_channel_token(self):
        self.assertEqual(parse_channel_id_token("<#987654321>"), 987654321)
        self.assertEqual(parse_channel_id_token("987654321"), 987654321)
        self.assertIsNone(parse_channel_id_token(""))
        self.assertIsNone(parse_channel_id_token("#general"))

    def test_split_pipe(self):
        self.assertEqual(split_pipe(" abc | some note | more "), ("abc", "some note | more"))
        self.assertEqual(split_pipe("abc"), ("abc", ""))

    def test_parse_kv_keeps_quoted_values(self):
        positional, options = parse_kv('Alice Smith role=apprentice trello="abc def"')
        self.assertEqual(positional, ["Alice", "Smith"])
        self.assertEqual(options, {"role": "apprentice", "trello": "abc def"})

    def test_parse_kv_survives_unbalanced_quotes(self):
        positional, options = parse_kv('name="Bob')
        self.assertEqual(positional, [])
        self.assertEqual(options, {"name": '"Bob'})

    def test_page_args(self):
        self.assertEqual(parse_page_args([], default_size=10, max_size=50), (1, 10, []))
        self.assertEqual(parse_page_args(["3", "20"], default_size=10, max_size=50), (3, 20, []))
        self.assertEqual(parse_page_args(["2", "500"], default_size=10, max_size=50), (2, 50, []))
        self.assertEqual(parse_page_args(["0"], default_size=10, max_size=50), (1, 10, []))
        self.assertEqual(
            parse_page_args(["inactive", "2"], default_size=10, max_size=50),
            (1, 10, ["inactive", "2"]),
        )

    def test_page_footer_never_shows_zero_pages(self):
        self.assertEqual(page_footer(1, 0), "Page 1/1")
        self.assertEqual(page_footer(2, 3), "Page 2/3")


if __name__ == "__main__":
    unittest.main()
