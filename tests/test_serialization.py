"""
Tests for search (pruning) and print (full) serialization.

Run with: pytest tests/test_serialization.py -v
"""
from browser_mcp.core.serialization import (
    PLACEHOLDER,
    TreeSerializer,
    format_open_tag,
    print_subtree,
    search_tree,
    serialize,
)
from browser_mcp.core.tree import DomNode

from tests.dom_factories import document, element, frame, text


def body_of(*children, url="https://example.com/", attrs=None):
    return DomNode.from_document(document(element("body", *children, attrs=attrs), url=url)).body


def options_select():
    return element(
        "select",
        text("\n  "),
        element("option", text("Select an option"), attrs={"value": ""}),
        element("option", text("Option 1"), attrs={"value": "option1"}),
        element("option", text("Option 2"), attrs={"value": "option2"}),
        element("option", text("Option 3"), attrs={"value": "option3"}),
        text("\n"),
        attrs={"class": "test-select", "id": "test-select"},
    )


# =============================================================================
# Test Shared Rendering
# =============================================================================

class TestOpenTag:
    """Tests for tag formatting."""

    def test_attributes_in_order_and_verbatim(self):
        node = DomNode(element("a", attrs={"href": "/x?a=1&b=2", "title": 'say "hi"'}))

        assert format_open_tag(node) == '<a href="/x?a=1&b=2" title="say "hi"">'

    def test_no_attributes(self):
        assert format_open_tag(DomNode(element("br"))) == "<br>"


# =============================================================================
# Test Search (pruning mode)
# =============================================================================

class TestSearchTree:
    """Tests for pruned rendering."""

    def test_sibling_placeholder_scenario(self):
        body = body_of(element(
            "div",
            element("p", text("Option 1 is here")),
            element("p", text("Option 2 is not")),
            attrs={"class": "c"},
        ))

        result = search_tree(body, "Option 1")

        assert result == (
            '<body>\n'
            '  <div class="c">\n'
            '    <p>Option 1 is here</p>\n'
            '    [...]\n'
            '  </div>\n'
            '</body>'
        )
        assert "Option 2 is not" not in result

    def test_case_insensitive_output_is_identical(self):
        body = body_of(element("div", element("p", text("Option 1 is here")), element("p", text("Other"))))

        assert search_tree(body, "option 1") == search_tree(body, "OPTION 1")

    def test_mixed_case_matches_all(self):
        body = body_of(element(
            "div",
            element("p", text("UPPERCASE TARGET")),
            element("p", text("lowercase target")),
            element("p", text("MiXeD CaSe TaRgEt")),
        ))

        result = search_tree(body, "target")

        assert "UPPERCASE TARGET" in result
        assert "lowercase target" in result
        assert "MiXeD CaSe TaRgEt" in result
        assert PLACEHOLDER not in result

    def test_attribute_match(self):
        body = body_of(element("div", options_select(), attrs={"class": "main"}))

        result = search_tree(body, "option1")

        assert result == (
            '<body>\n'
            '  <div class="main">\n'
            '    <select class="test-select" id="test-select">\n'
            '      [...]\n'
            '      <option value="option1">Option 1</option>\n'
            '      [...]\n'
            '      [...]\n'
            '    </select>\n'
            '  </div>\n'
            '</body>'
        )

    def test_nested_match_with_placeholder_for_sibling(self):
        body = body_of(element(
            "div",
            text("\n    "),
            element("div", element("div", text("Target text"), attrs={"class": "inner"}), attrs={"class": "middle"}),
            text("\n    "),
            element("div", text("Other content"), attrs={"class": "sibling"}),
            attrs={"class": "outer"},
        ))

        result = search_tree(body, "Target text")

        assert result == (
            '<body>\n'
            '  <div class="outer">\n'
            '    <div class="middle">\n'
            '      <div class="inner">Target text</div>\n'
            '    </div>\n'
            '    [...]\n'
            '  </div>\n'
            '</body>'
        )

    def test_indentation(self):
        body = body_of(element(
            "div",
            element("div", element("div", text("Target content"), attrs={"class": "level3"}), attrs={"class": "level2"}),
            attrs={"class": "level1"},
        ))

        lines = search_tree(body, "Target content").split("\n")

        assert lines[1].startswith('  <div class="level1">')
        assert lines[2].startswith('    <div class="level2">')
        assert lines[3].startswith('      <div class="level3">')

    def test_no_placeholder_without_matching_sibling(self):
        body = body_of(
            element("div", text("Nothing here")),
            element("div", text("Still nothing")),
            attrs={"class": "target"},
        )

        assert search_tree(body, "target") == '<body class="target"></body>'

    def test_no_match_collapses_body(self):
        body = body_of(element("div", text("Nothing here")), element("p", text("Still nothing")))

        assert search_tree(body, "absent") == "<body>\n  [...]\n</body>"

    def test_empty_body(self):
        assert search_tree(body_of(), "anything") == "<body>\n</body>"

    def test_body_with_only_text(self):
        assert search_tree(body_of(text("plain")), "anything") == "<body>\n</body>"

    def test_missing_body(self):
        assert search_tree(None, "anything") == ""

    def test_script_style_svg_are_skipped(self):
        body = body_of(element(
            "div",
            element("p", text("Visible content with target")),
            element("script", text("console.log('target should not be found');")),
            element("style", text(".target { color: red; }")),
            element("svg", element("text", text("target in svg"))),
        ))

        result = search_tree(body, "target")

        assert result == (
            '<body>\n'
            '  <div>\n'
            '    <p>Visible content with target</p>\n'
            '  </div>\n'
            '</body>'
        )

    def test_script_alone_never_matches(self):
        body = body_of(element("script", text("var target = 1;")))

        result = search_tree(body, "target")

        assert result == "<body>\n  [...]\n</body>"
        assert "script" not in result

    def test_shadow_dom_content(self):
        host = element(
            "div",
            attrs={"id": "shadow-host"},
            shadow=[element("div", element("p", text("Shadow DOM target text")), attrs={"class": "shadow-content"})],
        )

        result = search_tree(body_of(host), "Shadow DOM target")

        assert result == (
            '<body>\n'
            '  <div id="shadow-host">\n'
            '    <div class="shadow-content">\n'
            '      <p>Shadow DOM target text</p>\n'
            '    </div>\n'
            '  </div>\n'
            '</body>'
        )

    def test_light_and_shadow_groups_are_pruned_separately(self):
        host = element(
            "div",
            element("p", text("light")),
            shadow=[element("p", text("shadow target")), element("p", text("other"))],
        )

        result = search_tree(body_of(host), "target")

        assert result == (
            '<body>\n'
            '  <div>\n'
            '    <p>shadow target</p>\n'
            '    [...]\n'
            '  </div>\n'
            '</body>'
        )

    def test_same_origin_frame_content(self):
        inner = element("body", element("button", text("Accept all")))
        body = body_of(
            element("div", text("nothing")),
            frame(inner, "https://example.com/cmp", attrs={"src": "/cmp"}),
        )

        result = search_tree(body, "accept")

        assert result == (
            '<body>\n'
            '  [...]\n'
            '  <iframe src="/cmp">\n'
            '    <body>\n'
            '      <button>Accept all</button>\n'
            '    </body>\n'
            '  </iframe>\n'
            '</body>'
        )

    def test_cross_origin_frame_content_is_not_searched(self):
        inner = element("body", element("button", text("Accept all")))
        body = body_of(frame(inner, "https://cmp.example.org/", attrs={"src": "https://cmp.example.org/"}))

        assert search_tree(body, "accept all") == "<body>\n  [...]\n</body>"

    def test_non_matching_element_renders_placeholder(self):
        node = DomNode(element("div", element("p", text("x")), attrs={"class": "x-none"}))

        assert serialize(node, "absent") == '<div class="x-none">\n  [...]\n</div>'

    def test_non_matching_element_at_depth(self):
        node = DomNode(element("div", element("p", text("x"))))

        assert serialize(node, "absent", depth=2) == "    <div>\n      [...]\n    </div>"


# =============================================================================
# Test Print (full mode)
# =============================================================================

class TestPrintSubtree:
    """Tests for full rendering."""

    def test_select_with_options(self):
        result = print_subtree(DomNode(options_select()))

        assert result == (
            '<select class="test-select" id="test-select">\n'
            '  <option value="">Select an option</option>\n'
            '  <option value="option1">Option 1</option>\n'
            '  <option value="option2">Option 2</option>\n'
            '  <option value="option3">Option 3</option>\n'
            '</select>'
        )
        assert PLACEHOLDER not in result

    def test_nested_elements(self):
        node = DomNode(element(
            "div",
            element("div", element("h1", text("Title")), element("p", text("Description")), attrs={"class": "header"}),
            element("div", element("span", text("Content text")), attrs={"class": "content"}),
            attrs={"class": "container"},
        ))

        result = print_subtree(node)

        assert '<div class="header">' in result
        assert "<h1>Title</h1>" in result
        assert "<p>Description</p>" in result
        assert "<span>Content text</span>" in result
        assert result.index('<div class="header">') < result.index('<div class="content">')

    def test_indentation(self):
        node = DomNode(element(
            "div",
            element("div", element("div", element("span", text("Deep content")), attrs={"class": "level3"}),
                    attrs={"class": "level2"}),
            attrs={"class": "level1"},
        ))

        lines = print_subtree(node).split("\n")

        assert lines[0].startswith("<div")
        assert lines[1].startswith("  <div")
        assert lines[2].startswith("    <div")
        assert lines[3].startswith("      <span")

    def test_mixed_content(self):
        node = DomNode(element(
            "div",
            text("\n  Some text before\n  "),
            element("span", text("inline element")),
            text("\n  some text after\n  "),
            element("div", text("block element")),
            text("\n  final text\n"),
            attrs={"class": "mixed"},
        ))

        assert print_subtree(node) == (
            '<div class="mixed">\n'
            '  Some text before\n'
            '  <span>inline element</span>\n'
            '  some text after\n'
            '  <div>block element</div>\n'
            '  final text\n'
            '</div>'
        )

    def test_empty_element(self):
        assert print_subtree(DomNode(element("div", attrs={"class": "empty"}))) == '<div class="empty"></div>'

    def test_whitespace_only_text_renders_empty(self):
        assert print_subtree(DomNode(element("p", text("   \n ")))) == "<p></p>"

    def test_void_elements(self):
        node = DomNode(element(
            "div",
            element("img", attrs={"src": "test.jpg", "alt": "Test image"}),
            element("br"),
            element("input", attrs={"type": "text"}),
        ))

        result = print_subtree(node)

        assert '<img src="test.jpg" alt="Test image"></img>' in result
        assert "<br></br>" in result
        assert '<input type="text"></input>' in result

    def test_shadow_content_after_light_children(self):
        node = DomNode(element(
            "div",
            element("p", text("This div contains a shadow DOM.")),
            attrs={"class": "shadow-host"},
            shadow=[element(
                "div",
                element("h4", text("Shadow Title")),
                element("button", text("Shadow Button"), attrs={"class": "shadow-button"}),
                attrs={"class": "shadow-wrapper"},
            )],
        ))

        assert print_subtree(node) == (
            '<div class="shadow-host">\n'
            '  <p>This div contains a shadow DOM.</p>\n'
            '  <div class="shadow-wrapper">\n'
            '    <h4>Shadow Title</h4>\n'
            '    <button class="shadow-button">Shadow Button</button>\n'
            '  </div>\n'
            '</div>'
        )

    def test_same_origin_frame_body(self):
        inner = element("body", element("p", text("framed")))
        body = body_of(frame(inner, "https://example.com/f", attrs={"src": "/f"}))

        assert print_subtree(body.children[0]) == (
            '<iframe src="/f">\n'
            '  <body>\n'
            '    <p>framed</p>\n'
            '  </body>\n'
            '</iframe>'
        )

    def test_cross_origin_frame_renders_empty(self):
        inner = element("body", element("p", text("framed")))
        body = body_of(frame(inner, "https://other.example.org/", attrs={"src": "https://other.example.org/"}))

        assert print_subtree(body.children[0]) == '<iframe src="https://other.example.org/"></iframe>'

    def test_script_is_printed_as_ordinary_element(self):
        node = DomNode(element("div", element("script", text("init();"))))

        assert print_subtree(node) == "<div>\n  <script>init();</script>\n</div>"

    def test_full_mode_serializer_has_no_matcher(self):
        assert not TreeSerializer().pruning


# =============================================================================
# Test Deep Documents
# =============================================================================

class TestDeepDocuments:
    """Tests for documents nested deeper than the recursion limit."""

    DEPTH = 2000

    def deep_body(self):
        node = element("p", text("needle"))
        for _ in range(self.DEPTH):
            node = element("div", node)
        return body_of(node, element("span", text("other")))

    def test_search_deep_document(self):
        lines = search_tree(self.deep_body(), "needle").split("\n")

        assert lines[0] == "<body>"
        assert lines[self.DEPTH + 1] == "  " * (self.DEPTH + 1) + "<p>needle</p>"
        assert lines[-2] == "  [...]"
        assert lines[-1] == "</body>"
        assert len(lines) == 2 * self.DEPTH + 4

    def test_print_deep_document(self):
        lines = print_subtree(self.deep_body()).split("\n")

        assert lines[self.DEPTH + 1] == "  " * (self.DEPTH + 1) + "<p>needle</p>"
        assert lines[-2] == "  <span>other</span>"
        assert lines[-1] == "</body>"
        assert len(lines) == 2 * self.DEPTH + 4
