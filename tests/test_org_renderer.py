"""Tests for Org to HTML rendering."""
from unittest.mock import patch

import pytest

from groundwave_zk.exceptions import RenderError
from groundwave_zk.storage import org_renderer
from groundwave_zk.storage.org_renderer import EXTERNAL_LINK_MARK, OrgRenderer, render_html
from tests.fakes import ID_A, ID_B


class TestIDLinks:
    """Tests for org-roam id: links."""

    def test_labelled_id_link(self):
        html = render_html(f"See [[id:{ID_B}][B note]].", base_path="/note")
        assert f'<a href="/note/{ID_B}">B note</a>' in html

    def test_default_base_path(self):
        assert f'<a href="/zk/{ID_A}">' in render_html(f"[[id:{ID_A}][A]]")

    def test_trailing_slash_in_base_path(self):
        assert f'href="/zk/{ID_A}"' in render_html(f"[[id:{ID_A}][A]]", base_path="/zk/")

    def test_unlabelled_id_link_shows_id(self):
        html = render_html(f"[[id:{ID_A}]]")
        assert f'href="/zk/{ID_A}"' in html
        assert f">{ID_A}</a>" in html
        assert "id:" not in html

    def test_id_links_never_marked_external(self):
        assert EXTERNAL_LINK_MARK not in render_html(f"[[id:{ID_A}][A]]", base_path="/custom")

    def test_link_label_markup(self):
        html = render_html(f"[[id:{ID_A}][*bold* label]]")
        assert "<strong>bold</strong> label</a>" in html


class TestOtherLinks:
    """Tests for external, internal and unsafe links."""

    def test_external_link_marked(self):
        html = render_html("[[https://example.com][Example]]")
        assert 'href="https://example.com"' in html
        assert f"{EXTERNAL_LINK_MARK}Example</a>" in html

    def test_mark_not_doubled(self):
        html = render_html(f"[[https://example.com][{EXTERNAL_LINK_MARK}Example]]")
        assert html.count(EXTERNAL_LINK_MARK) == 1

    @pytest.mark.parametrize("target", ["/zk/x", "/note/y", "/groundwave/z", "/home/w"])
    def test_site_paths_not_marked(self, target):
        html = render_html(f"[[{target}][here]]")
        assert f'href="{target}"' in html
        assert EXTERNAL_LINK_MARK not in html

    def test_site_base_url_not_marked(self):
        renderer = OrgRenderer(site_base_url="https://gw.example.com/app/")
        html = renderer.render("[[https://gw.example.com/app/contacts][Contacts]]")
        assert EXTERNAL_LINK_MARK not in html

    def test_other_host_still_marked(self):
        renderer = OrgRenderer(site_base_url="https://gw.example.com")
        html = renderer.render("[[https://other.example.com/x][Other]]")
        assert EXTERNAL_LINK_MARK in html

    def test_image_link(self):
        assert 'src="img/cat.png"' in render_html("[[file:img/cat.png]]")

    def test_javascript_link_dropped(self):
        html = render_html("[[javascript:alert(1)][click]]")
        assert "<a" not in html
        assert "click" in html

    def test_footnotes_are_internal(self):
        html = render_html("text[fn:1]\n\n[fn:1] note\n")
        assert "footnote-ref" in html
        assert EXTERNAL_LINK_MARK not in html


class TestBlocks:
    """Tests for block-level output."""

    def test_keywords_and_drawers_hidden(self):
        body = f":PROPERTIES:\n:ID: {ID_A}\n:END:\n#+TITLE: Hidden\n#+access: public\n\nBody text\n"
        html = render_html(body)
        assert "Body text" in html
        assert ID_A not in html
        assert "Hidden" not in html
        assert "access" not in html

    def test_custom_todo_keywords(self):
        html = render_html("* STRT Working on it\n* KILL Abandoned\n")
        assert 'class="todo STRT"' in html
        assert 'class="done KILL"' in html

    def test_headline_level_shifted(self):
        html = render_html("* Top\n*** Deep\n")
        assert "<h2" in html
        assert "<h4" in html
        assert "<h1" not in html

    def test_source_block(self):
        html = render_html("#+begin_src python\nprint(1 < 2)\n#+end_src\n")
        assert '<pre><code class="code-block">print(1 &lt; 2)</code></pre>' in html

    def test_lists_and_tables(self):
        html = render_html("- one\n- two\n\n| a | b |\n|---+---|\n| 1 | 2 |\n")
        assert "<li>one</li>" in html
        assert "<table" in html


class TestInlineMarkup:
    """Tests for inline markup."""

    def test_inline_source(self):
        html = render_html("call src_python{print(1)} now")
        assert '<code class="inline-code">print(1)</code>' in html

    def test_verbatim(self):
        assert '<code class="inline-code">x = 1</code>' in render_html("~x = 1~")

    def test_bold_across_line_break(self):
        assert "<strong>" in render_html("some *bold\ntext* here")

    def test_html_escaped(self):
        assert "<p>a &lt; b &amp; c</p>" in render_html("a < b & c")


class TestRenderFailures:
    """Tests for input handling and failure reporting."""

    def test_invalid_utf8_raises(self):
        with pytest.raises(RenderError) as exc_info:
            render_html(b"\xff\xfe bad", filename="bad.org")
        assert exc_info.value.details["filename"] == "bad.org"

    def test_bytes_body(self):
        assert "café" in render_html("café".encode("utf-8"))

    def test_deterministic(self):
        body = f"* TODO Heading\nSee [[id:{ID_A}][A]] and [[https://example.com][x]].\n"
        assert render_html(body) == render_html(body)

    def test_empty_body(self):
        assert render_html("") == ""
        assert render_html("  \n") == ""

    def test_pandoc_failure_raises(self):
        with patch.object(
            org_renderer.pypandoc, "convert_text", side_effect=OSError("No pandoc was found")
        ):
            with pytest.raises(RenderError) as exc_info:
                render_html("text", filename="a.org")
        assert exc_info.value.details["filename"] == "a.org"
