"""
クエリ文字列のプロパティテスト
"""

import unittest

from hypothesis import given, settings
from hypothesis import strategies as st

from oauthflow.query import build_query, parse_query

names = st.text(min_size=1, max_size=20)
values = st.text(min_size=1, max_size=40)


class TestQueryProperties(unittest.TestCase):
    @given(st.text(max_size=200))
    @settings(max_examples=200)
    def test_parse_never_raises(self, query):
        """任意の文字列を解析しても例外にならない"""
        result = parse_query(query)
        self.assertIsInstance(result, dict)
        self.assertNotIn("", result)

    @given(st.dictionaries(names, values, max_size=8))
    @settings(max_examples=100)
    def test_built_query_is_parsed_back(self, params):
        self.assertEqual(parse_query(build_query(params)), params)

    @given(st.dictionaries(names, values, min_size=1, max_size=8))
    def test_built_query_has_no_raw_separators(self, params):
        """値に & や = が含まれていても区切りとして解釈されない"""
        query = build_query(params)
        self.assertEqual(query.count("&"), len(params) - 1)
        self.assertEqual(query.count("="), len(params))


if __name__ == "__main__":
    unittest.main()
