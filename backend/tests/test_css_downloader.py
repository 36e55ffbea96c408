import pytest

from pagekit.css_downloader import (
    CssDownloader,
    extract_imports,
    rewrite_relative_urls,
    stylesheet_urls_from_tree,
)
from pagekit.ir_normalizer import normalize_node


@pytest.fixture
async def session_id(store):
    return (await store.create_session()).session_id


async def saved_css(store, session_id, descriptor) -> str:
    return (await store.get_asset(session_id, "css", descriptor.local_filename)).decode("utf-8")


async def test_import_cycle_is_inlined_once(web, fetcher, store, session_id):
    web.add("https://example.com/a.css", '@import url("b.css");\n.a { color: red; }', content_type="text/css")
    web.add("https://example.com/b.css", '@import "a.css";\n.b { color: blue; }', content_type="text/css")

    descriptor = await CssDownloader(store, fetcher).download_stylesheet(
        session_id, "/a.css", "https://example.com/index.html")
    css = await saved_css(store, session_id, descriptor)

    assert css.count("/* Could not inline: https://example.com/a.css */") == 1
    assert "/* Inlined from: https://example.com/b.css */" in css
    assert ".a { color: red; }" in css and ".b { color: blue; }" in css
    assert "@import" not in css
    assert descriptor.imports_resolved == 1
    assert descriptor.original_url == "/a.css"
    assert descriptor.absolute_url == "https://example.com/a.css"
    assert web.hits["https://example.com/a.css"] == 1


async def test_failed_import_leaves_marker(web, fetcher, store, session_id):
    web.add("https://example.com/site.css", "@import url('missing.css') screen;\nbody { margin: 0 }")

    descriptor = await CssDownloader(store, fetcher).download_stylesheet(
        session_id, "https://example.com/site.css")
    css = await saved_css(store, session_id, descriptor)

    assert "/* Failed to inline: https://example.com/missing.css - HTTP 404 */" in css
    assert "body { margin: 0 }" in css
    assert descriptor.imports_resolved == 0


async def test_import_depth_is_bounded(web, fetcher, store, session_id):
    for i in range(6):
        web.add(f"https://example.com/c{i}.css", f'@import "c{i + 1}.css";\n.c{i} {{}}')

    downloader = CssDownloader(store, fetcher, max_import_depth=2)
    descriptor = await downloader.download_stylesheet(session_id, "https://example.com/c0.css")
    css = await saved_css(store, session_id, descriptor)

    assert "/* Import depth limit reached: https://example.com/c3.css */" in css
    assert descriptor.imports_resolved == 2
    assert web.hits["https://example.com/c3.css"] == 0


async def test_relative_urls_are_absolutized(web, fetcher, store, session_id):
    web.add("https://cdn.example.com/css/theme.css",
            ".hero { background: url(../img/bg.png) } .x { background: url('data:image/png;base64,AAAA') }")

    descriptor = await CssDownloader(store, fetcher).download_stylesheet(
        session_id, "https://cdn.example.com/css/theme.css")
    css = await saved_css(store, session_id, descriptor)

    assert "url('https://cdn.example.com/img/bg.png')" in css
    assert "url('data:image/png;base64,AAAA')" in css


async def test_batch_keeps_going_after_failures(web, fetcher, store, session_id):
    web.add("https://example.com/ok.css", "p { color: green }")

    result = await CssDownloader(store, fetcher).download_stylesheets(
        session_id, ["/ok.css", "/gone.css", "/ok.css"], "https://example.com/")

    assert len(result.assets) == 1
    assert len(result.errors) == 1
    assert "gone.css" in result.errors[0]["url"]


def test_rewrite_leaves_absolute_and_fragment_urls():
    css = "a { background: url(https://x.com/a.png) } b { filter: url(#blur) } c { background: url(//y.com/c.png) }"
    assert rewrite_relative_urls(css, "https://example.com/css/") == css


def test_extract_imports_handles_both_forms():
    css = '@import url("a.css");\n@import \'b.css\' print;\n@import url(c.css)'
    assert [url for _, url in extract_imports(css)] == ["a.css", "b.css", "c.css"]


def test_stylesheet_urls_from_tree():
    root = normalize_node({
        "tagName": "HTML",
        "children": [
            {"tagName": "LINK", "attributes": {"rel": "stylesheet", "href": "/main.css"}},
            {"tagName": "LINK", "attributes": {"rel": "icon", "href": "/favicon.ico"}},
            {"tagName": "STYLE", "textContent": '@import url("/fonts.css"); body { margin: 0 }'},
            {"tagName": "LINK", "attributes": {"rel": "Stylesheet preload", "href": "/main.css"}},
        ],
    })
    assert stylesheet_urls_from_tree(root) == ["/main.css", "/fonts.css"]
