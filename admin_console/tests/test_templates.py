import unittest

from admin_console.templates import find_tokens, render_text


class RenderTextTests(unittest.TestCase):
    def test_missing_variable_is_left_verbatim(self):
        rendered = render_text(
            "Hello {{name}}, order {{order_number}}", {"name": "Taro"}
        )
        self.assertEqual(rendered, "Hello Taro, order {{order_number}}")

    def test_replaces_every_occurrence(self):
        rendered = render_text("{{a}}-{{b}}-{{a}}", {"a": "x", "b": "y"})
        self.assertEqual(rendered, "x-y-x")

    def test_value_that_looks_like_a_token_is_not_rescanned(self):
        rendered = render_text(
            "Dear {{name}}, total {{total}}",
            {"name": "{{total}}", "total": "1,000"},
        )
        self.assertEqual(rendered, "Dear {{total}}, total 1,000")

    def test_rendering_is_idempotent(self):
        text = "注文番号: {{order_number}} / {{missing}}"
        variables = {"order_number": "ORD-20240320-0001"}
        self.assertEqual(render_text(text, variables), render_text(text, variables))

    def test_non_string_values(self):
        rendered = render_text("{{total}} items: {{count}}", {"total": 4980, "count": 2})
        self.assertEqual(rendered, "4980 items: 2")

    def test_spaced_braces_are_not_tokens(self):
        rendered = render_text("{{ name }} / {{name}}", {"name": "Taro"})
        self.assertEqual(rendered, "{{ name }} / Taro")

    def test_none_value_keeps_token(self):
        self.assertEqual(render_text("{{carrier}}", {"carrier": None}), "{{carrier}}")

    def test_malformed_tokens_are_plain_text(self):
        text = "{{1abc}} {name} {{ }}"
        self.assertEqual(render_text(text, {"name": "x", "1abc": "y"}), text)

    def test_find_tokens_in_order_without_duplicates(self):
        tokens = find_tokens("{{b}} {{a}} {{b}} {{ c }} {{c}}")
        self.assertEqual(tokens, ["b", "a", "c"])


if __name__ == "__main__":
    unittest.main()
