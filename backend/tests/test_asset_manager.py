import pytest

from pagekit.asset_manager import AssetManager, collect_image_urls
from pagekit.config import Settings
from pagekit.ir_normalizer import normalize_capture
from pagekit.session_store import AssetType

PAGE = "https://example.com/"
FONT_URL = "https://example.com/css/fonts/brand.woff2"


def page_capture() -> dict:
    return {
        "url": PAGE,
        "title": "Home",
        "structure": {
            "tagName": "BODY",
            "children": [
                {"tagName": "IMG", "attributes": {"src": "/hero.png", "alt": "Hero"}},
                {"tagName": "IMG", "attributes": {"src": "/missing.png"}},
                {"tagName": "DIV", "layout": {"backgroundImage": 'url("/bg.png")'},
                 "textContent": "Banner"},
                {"tagName": "LINK", "attributes": {"rel": "stylesheet", "href": "/css/site.css"}},
            ],
        },
    }


@pytest.fixture
def site(web, make_png):
    web.add("https://example.com/hero.png", make_png((8, 6)), content_type="image/png")
    web.add("https://example.com/bg.png", make_png((2, 2), (0, 0, 255)), content_type="image/png")
    web.add("https://example.com/css/site.css", '@import "parts/fonts.css";\nbody { margin: 0 }',
            content_type="text/css")
    web.add("https://example.com/css/parts/fonts.css",
            '@font-face { font-family: Brand; src: url(../fonts/brand.woff2) format("woff2"); }',
            content_type="text/css")
    web.add(FONT_URL, b"wOF2" + b"\x00" * 32, content_type="font/woff2")
    return web


@pytest.fixture
async def manager(site, tmp_path):
    client = site.client()
    settings = Settings(storage_dir=str(tmp_path / "assets"), cleanup_enabled=False, fetch_backoff_base=0)
    yield AssetManager(settings=settings, client=client)
    await client.aclose()


def test_collect_image_urls_includes_backgrounds():
    capture = normalize_capture(page_capture())
    assert collect_image_urls(capture) == ["/hero.png", "/missing.png", "/bg.png"]


async def test_process_webpage_downloads_everything(manager, site):
    processed = await manager.process_webpage(page_capture())
    sid = processed.session_id

    assert processed.report.summary()["images"] == 2
    assert processed.report.summary()["css"] == 1
    assert processed.report.summary()["fonts"] == 1
    assert processed.report.summary()["failed"] == 1
    [error] = processed.report.errors
    assert error["type"] == "images"
    assert error["url"] == "/missing.png"

    session = await manager.store.get_session(sid)
    assert session.locked is False
    image_urls = {a.absolute_url for a in session.assets[AssetType.IMAGES]}
    assert image_urls == {"https://example.com/hero.png", "https://example.com/bg.png"}

    # Font URL comes from the imported sheet, resolved against that sheet
    [font] = session.assets[AssetType.FONTS]
    assert font.absolute_url == FONT_URL
    assert font.local_filename.endswith(".woff2")
    assert site.hits[FONT_URL] == 1

    assert processed.asset_map.rewrite("/hero.png", "images").startswith(f"/assets/{sid}/images/hero_")
    assert processed.asset_map.rewrite("/bg.png", "images").startswith(f"/assets/{sid}/images/bg_")


async def test_session_is_locked_while_downloading(manager, monkeypatch):
    real_download = manager.images.download_images
    seen_locked = []

    async def watching_download(session_id, urls, base_url=""):
        seen_locked.append((await manager.store.get_session(session_id)).locked)
        return await real_download(session_id, urls, base_url)

    monkeypatch.setattr(manager.images, "download_images", watching_download)
    processed = await manager.process_webpage(page_capture())

    assert seen_locked == [True]
    assert (await manager.store.get_session(processed.session_id)).locked is False


async def test_session_is_unlocked_when_a_download_raises(manager, monkeypatch):
    session = await manager.store.create_session()

    async def broken_fonts(session_id, faces):
        raise RuntimeError("font pipeline down")

    monkeypatch.setattr(manager.fonts, "download_fonts", broken_fonts)
    with pytest.raises(RuntimeError, match="font pipeline down"):
        await manager.download_all_assets(session.session_id, normalize_capture(page_capture()))

    stored = await manager.store.get_session(session.session_id)
    assert stored.locked is False
    # Work done before the failure is kept
    assert len(stored.assets[AssetType.IMAGES]) == 2
