"""Tokenizer and conditional evaluator."""
import pytest

from greenlease.merge.conditions import (
    EqualsGuard,
    InvalidGuard,
    TruthyGuard,
    evaluate_conditionals,
    evaluate_guard,
    is_truthy,
    parse_guard,
)
from greenlease.merge.tokens import (
    ConditionalClose,
    ConditionalOpen,
    Literal,
    Placeholder,
    StructuralMarker,
    split_lines,
    tokenize,
)


def _text(tokens):
    return "".join(t.text if isinstance(t, Literal) else f"<{t.key}>" for t in tokens)


class TestTokenize:
    def test_classifies_every_tag_kind(self):
        tokens = tokenize('A {{name}} {{#if x == "y"}}B{{/if}} {{>role tenant}}')
        assert tokens == [
            Literal("A "),
            Placeholder("name"),
            Literal(" "),
            ConditionalOpen("if", 'x == "y"'),
            Literal("B"),
            ConditionalClose("if"),
            Literal(" "),
            StructuralMarker("role", "tenant"),
        ]

    def test_marker_without_argument(self):
        assert tokenize("{{>parkingClause}}") == [StructuralMarker("parkingClause")]

    def test_empty_tags_are_dropped_and_literals_joined(self):
        assert tokenize("a{{}}b{{ }}c") == [Literal("abc")]

    def test_standalone_block_tag_swallows_its_line_break(self):
        tokens = tokenize("one\n{{#if x}}\ntwo\n{{/if}}\nthree")
        assert tokens == [
            Literal("one\n"),
            ConditionalOpen("if", "x"),
            Literal("two\n"),
            ConditionalClose("if"),
            Literal("three"),
        ]

    def test_inline_block_tag_keeps_surrounding_text(self):
        tokens = tokenize("a {{#if x}}b{{/if}} c\n")
        assert tokens[0] == Literal("a ")
        assert tokens[-1] == Literal(" c\n")

    def test_unterminated_tag_is_dropped(self):
        tokens = tokenize("1.1 {{name}} x {{tenantName\nnext line")
        assert tokens == [Literal("1.1 "), Placeholder("name"), Literal(" x \nnext line")]

    def test_split_lines_preserves_layout(self):
        lines = split_lines(tokenize("1.1 {{a}}\n\n1.2 {{b}}"))
        assert len(lines) == 3
        assert _text(lines[0]) == "1.1 <a>"
        assert lines[1] == []
        assert _text(lines[2]) == "1.2 <b>"


class TestGuards:
    @pytest.mark.parametrize("source,expected", [
        ('hasParking == "yes"', EqualsGuard("hasParking", "yes")),
        ("hasParking == 'yes'", EqualsGuard("hasParking", "yes")),
        ('(eq hasParking "yes")', EqualsGuard("hasParking", "yes")),
        ("specialTerms", TruthyGuard("specialTerms")),
        ("a ==", InvalidGuard("a ==")),
        ("a b c", InvalidGuard("a b c")),
    ])
    def test_parse_guard(self, source, expected):
        assert parse_guard(source) == expected

    @pytest.mark.parametrize("value,expected", [
        (None, False), (False, False), ("", False), ("  ", False), ([], False), (0, False),
        ("no", True), ("yes", True), (["a"], True), (1, True), (True, True),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected

    def test_equality_against_list_value_matches_membership(self):
        guard = EqualsGuard("security_types", "Cash deposit")
        assert evaluate_guard(guard, {"security_types": ["Bank guarantee", "Cash deposit"]})
        assert not evaluate_guard(guard, {"security_types": ["Bank guarantee"]})

    def test_absent_key_is_not_satisfied(self):
        assert not evaluate_guard(EqualsGuard("missing", "yes"), {})
        assert not evaluate_guard(TruthyGuard("missing"), {})

    def test_malformed_guard_is_not_satisfied(self):
        assert not evaluate_guard(InvalidGuard("??"), {"??": "yes"})

    @pytest.mark.parametrize("value", ["yes", "Yes", " YES ", "true", True, "כן"])
    def test_yes_guard_accepts_every_affirmative_spelling(self, value):
        assert evaluate_guard(EqualsGuard("hasExtensionOption", "yes"), {"hasExtensionOption": value})

    @pytest.mark.parametrize("value", ["no", "לא", False, "", "maybe"])
    def test_yes_guard_rejects_other_values(self, value):
        assert not evaluate_guard(EqualsGuard("hasExtensionOption", "yes"), {"hasExtensionOption": value})


class TestEvaluateConditionals:
    def test_keeps_satisfied_and_removes_unsatisfied_blocks(self):
        tokens = tokenize('{{#if a == "1"}}keep{{/if}}{{#if b}}drop{{/if}}!')
        result = evaluate_conditionals(tokens, {"a": "1", "b": ""})
        assert result == [Literal("keep"), Literal("!")]

    def test_placeholders_inside_removed_block_never_survive(self):
        tokens = tokenize("{{#if show}}{{secret}}{{/if}}done")
        result = evaluate_conditionals(tokens, {})
        assert not any(isinstance(token, Placeholder) for token in result)

    def test_nested_block_requires_parent(self):
        tokens = tokenize("{{#if outer}}A{{#if inner}}B{{/if}}{{/if}}C")
        assert _text(evaluate_conditionals(tokens, {"outer": "", "inner": "yes"})) == "C"
        assert _text(evaluate_conditionals(tokens, {"outer": "yes", "inner": "yes"})) == "ABC"
        assert _text(evaluate_conditionals(tokens, {"outer": "yes", "inner": ""})) == "AC"

    def test_stray_close_is_dropped(self):
        assert _text(evaluate_conditionals(tokenize("a{{/if}}b"), {})) == "ab"

    def test_unclosed_block_runs_to_end(self):
        assert _text(evaluate_conditionals(tokenize("a{{#if x}}b"), {})) == "a"

    def test_unknown_block_kind_is_removed(self):
        assert _text(evaluate_conditionals(tokenize("{{#each items}}x{{/each}}y"), {"items": [1]})) == "y"
