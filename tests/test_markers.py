"""test suite for marker parsing and the marker algebra."""
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.algebra.range import VersionRange
from resolvent.domain.errors import MarkerSyntaxError
from resolvent.markers import MarkerTree
from resolvent.markers.parser import BoolOp, Comparison, MarkerParser
from resolvent.markers.tokenizer import MarkerTokenizer, TokenType


def m(text):
    return MarkerTree.parse(text)


class TestTokenizer:
    """test the marker tokenizer."""

    def test_simple_comparison(self):
        tokens = MarkerTokenizer().tokenize("sys_platform == 'darwin'")
        types = [t.type for t in tokens if t.type != TokenType.WHITESPACE]
        assert types == [TokenType.IDENTIFIER, TokenType.OPERATOR, TokenType.STRING]

    def test_reconstruct_round_trips(self):
        text = "(os_name == 'nt' or sys_platform != \"linux\") and python_version >= '3.9'"
        tokenizer = MarkerTokenizer()
        assert tokenizer.reconstruct(tokenizer.tokenize(text)) == text

    def test_keywords_and_parens(self):
        tokens = MarkerTokenizer().tokenize("(a and b)")
        types = [t.type for t in tokens if t.type != TokenType.WHITESPACE]
        assert types[0] == TokenType.LPAREN
        assert types[-1] == TokenType.RPAREN


class TestParser:
    def parse(self, text):
        return MarkerParser(MarkerTokenizer().tokenize(text), text).parse()

    def test_comparison(self):
        node = self.parse("os_name == 'nt'")
        assert isinstance(node, Comparison)
        assert node.lhs.is_variable
        assert node.rhs.text == "nt"

    def test_and_binds_tighter_than_or(self):
        node = self.parse("a == '1' or b == '2' and c == '3'")
        assert isinstance(node, BoolOp)
        assert node.op == "or"
        assert isinstance(node.children[1], BoolOp)
        assert node.children[1].op == "and"

    def test_not_in(self):
        node = self.parse("'linux' not in platform_release")
        assert node.op == "not in"

    def test_unbalanced_parenthesis(self):
        with pytest.raises(MarkerSyntaxError):
            self.parse("(os_name == 'nt'")


class TestMarkerTree:
    """test the boolean algebra over parsed markers."""

    def test_empty_marker_is_true(self):
        assert m("").is_true()
        assert m(None).is_true()
        assert str(MarkerTree.TRUE) == ""

    def test_invalid_marker_raises(self):
        with pytest.raises(MarkerSyntaxError):
            m("os_name = 'nt'")

    def test_contradiction_is_false(self):
        marker = m("sys_platform == 'darwin' and sys_platform == 'win32'")
        assert marker.is_false()

    def test_tautology_is_true(self):
        assert m("sys_platform == 'darwin' or sys_platform != 'darwin'").is_true()

    def test_negation(self):
        darwin = m("sys_platform == 'darwin'")
        assert darwin.negate() == m("sys_platform != 'darwin'")
        assert darwin.and_(darwin.negate()).is_false()
        assert darwin.or_(darwin.negate()).is_true()

    def test_disjoint_platforms(self):
        assert m("sys_platform == 'darwin'").is_disjoint(m("sys_platform == 'win32'"))
        assert not m("sys_platform == 'darwin'").is_disjoint(m("python_version >= '3.9'"))

    def test_implies(self):
        narrow = m("sys_platform == 'darwin' and python_version >= '3.10'")
        assert narrow.implies(m("sys_platform == 'darwin'"))
        assert narrow.implies(m("python_version >= '3.9'"))
        assert not m("python_version >= '3.9'").implies(narrow)

    def test_python_version_maps_to_full_version(self):
        assert m("python_version >= '3.10'") == m("python_full_version >= '3.10'")
        assert m("python_version > '3.9'") == m("python_full_version >= '3.10'")
        assert m("python_version <= '3.9'") == m("python_full_version < '3.10'")
        assert m("python_version == '3.9'").python_range() == VersionRange.between("3.9", "3.10")

    def test_python_range(self):
        marker = m("python_version >= '3.8' and sys_platform == 'linux' or python_version >= '3.11'")
        assert marker.python_range() == VersionRange.higher_than("3.8")
        assert m("os_name == 'nt'").python_range().is_full()

    def test_str_round_trips(self):
        for text in [
            "sys_platform == 'darwin'",
            "python_full_version >= '3.9' and sys_platform != 'win32'",
            "os_name == 'nt' or sys_platform == 'darwin'",
            "'linux' in platform_release",
        ]:
            marker = m(text)
            assert m(str(marker)) == marker

    def test_false_renders_as_impossible_python(self):
        assert m(str(MarkerTree.FALSE)).is_false()

    def test_merging_adjacent_python_ranges(self):
        marker = m("python_version < '3.10'").or_(m("python_version >= '3.10'"))
        assert marker.is_true()

    def test_with_extra(self):
        marker = m("extra == 'security' and sys_platform == 'linux'")
        assert marker.mentions_extra()
        assert marker.with_extra(None).is_false()
        assert marker.with_extra("security") == m("sys_platform == 'linux'")
        assert marker.with_extra("other").is_false()

    def test_extra_names_are_normalized(self):
        assert m("extra == 'Socks_Proxy'").with_extra("socks-proxy").is_true()

    def test_simplify_python(self):
        marker = m("python_full_version >= '3.9' and sys_platform == 'darwin'")
        simplified = marker.simplify_python(VersionRange.higher_than("3.9"))
        assert simplified == m("sys_platform == 'darwin'")

    def test_evaluate(self):
        marker = m("sys_platform == 'darwin' and python_version >= '3.9'")
        assert marker.evaluate({"sys_platform": "darwin", "python_full_version": "3.11.2"})
        assert not marker.evaluate({"sys_platform": "linux", "python_full_version": "3.11.2"})

    def test_evaluate_opaque_atom(self):
        marker = m("'arm' in platform_machine")
        assert marker.evaluate({"platform_machine": "arm64"})
        assert not marker.evaluate({"platform_machine": "x86_64"})

    def test_extra_evaluates_false_without_extra(self):
        assert not m("extra == 'test'").evaluate({})
        assert m("extra == 'test'").evaluate({"extra": "test"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
