"""Tests for image URL extraction from model replies."""

from __future__ import annotations

from pictora.generation.extractor import clean_url, extract_image_urls


class TestMarkdownAndInline:
    def test_markdown_image_in_prose(self):
        text = "Here is your image: ![result](https://cdn.example.com/a.png) enjoy!"
        assert extract_image_urls(text) == ["https://cdn.example.com/a.png"]

    def test_provider_inline_link(self):
        text = "Done |>![image](https://files.example.org/out/123)"
        assert extract_image_urls(text) == ["https://files.example.org/out/123"]

    def test_same_url_in_two_wrappers_is_returned_once(self):
        url = "https://cdn.example.com/fox.webp"
        text = f"![a]({url}) and again |>![b]({url}) and bare {url}."
        assert extract_image_urls(text) == [url]

    def test_family_order_markdown_first(self):
        text = (
            "bare https://img.example.com/first.jpg then "
            "![x](https://example.com/second.png)"
        )
        assert extract_image_urls(text) == [
            "https://example.com/second.png",
            "https://img.example.com/first.jpg",
        ]


class TestBareUrls:
    def test_known_cdn_without_wrapping(self):
        text = "see https://cloudflare.nananobanana.com/abc/def?sig=1 for the result"
        assert extract_image_urls(text) == ["https://cloudflare.nananobanana.com/abc/def?sig=1"]

    def test_image_extension_with_query(self):
        text = "Result: https://example.com/x/y.JPEG?w=512&h=512."
        assert extract_image_urls(text) == ["https://example.com/x/y.JPEG?w=512&h=512"]

    def test_unrelated_links_are_ignored(self):
        text = "Read the docs at https://example.com/docs/getting-started for details."
        assert extract_image_urls(text) == []

    def test_hinted_bare_url_is_kept(self):
        text = "Your render is ready: https://example.com/generated/77ab"
        assert extract_image_urls(text) == ["https://example.com/generated/77ab"]

    def test_url_continuing_after_extension_is_one_image(self):
        text = "Result: https://images.example.com/out.png/full"
        assert extract_image_urls(text) == ["https://images.example.com/out.png/full"]

    def test_extension_must_end_the_path(self):
        text = "Notes at https://example.com/b.pngx and https://example.com/gifts/list"
        assert extract_image_urls(text) == []

    def test_extension_before_fragment(self):
        text = "See https://example.com/c.webp#top"
        assert extract_image_urls(text) == ["https://example.com/c.webp#top"]

    def test_hint_words_inside_other_words_are_ignored(self):
        text = "I can't draw that. See https://en.wikipedia.org/wiki/Immediate_mode_GUI"
        assert extract_image_urls(text) == []

    def test_hint_in_hostname_only_is_ignored(self):
        text = "Try https://images.example.com/about or https://example.com/imagine-more"
        assert extract_image_urls(text) == []

    def test_hint_token_in_query_is_kept(self):
        text = "Download https://example.com/download?type=image&id=9"
        assert extract_image_urls(text) == ["https://example.com/download?type=image&id=9"]

    def test_trailing_punctuation_is_stripped(self):
        text = "(https://example.com/pic.png)."
        assert extract_image_urls(text) == ["https://example.com/pic.png"]


class TestTotality:
    def test_empty_and_non_string_input(self):
        assert extract_image_urls("") == []
        assert extract_image_urls(None) == []
        assert extract_image_urls(42) == []  # type: ignore[arg-type]

    def test_no_urls(self):
        assert extract_image_urls("I cannot generate that image, sorry.") == []

    def test_deterministic(self):
        text = (
            "![a](https://a.example.com/1.png) https://b.example.com/2.gif "
            "https://cloudflarer2.nananobanana.com/x/y"
        )
        assert extract_image_urls(text) == extract_image_urls(text)

    def test_custom_cdn_patterns(self):
        text = "link: https://media-host.test/abc123"
        result = extract_image_urls(text, cdn_patterns=[r"https://media-host\.test/\w+"])
        assert result == ["https://media-host.test/abc123"]

    def test_clean_url(self):
        assert clean_url(" https://x.test/a.png]),; ") == "https://x.test/a.png"
