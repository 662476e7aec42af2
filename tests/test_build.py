import json
from pathlib import Path

import pytest

from kindling.build import BuildOptions, build_site
from kindling.exceptions import BuildError


def create_project(tmp_path: Path, pages: dict[str, str], config: str | None = None) -> Path:
    project = tmp_path / "site"
    src = project / "src"
    for folder in ("pages", "layouts", "partials", "data", "collections"):
        (src / folder).mkdir(parents=True)
    (project / "public").mkdir()
    for rel, text in pages.items():
        path = src / "pages" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    if config is not None:
        (project / "kindling.yaml").write_text(config, encoding="utf-8")
    return project


def test_html_page_passes_through(tmp_path):
    body = "<!doctype html>\n<html><body><h1>Hello</h1></body></html>\n"
    project = create_project(tmp_path, {"index.html": body})
    result = build_site(project)
    dist = project / "dist"
    assert result.output_dir == dist.resolve()
    assert (dist / "index.html").read_text(encoding="utf-8") == body
    assert [page.rel for page in result.pages] == ["index.html"]
    assert result.skipped is False


def test_markdown_heading(tmp_path):
    project = create_project(tmp_path, {"blog/post.md": "# Heading\n"})
    build_site(project)
    html = (project / "dist" / "blog" / "post.html").read_text(encoding="utf-8")
    assert "<h1>Heading</h1>" in html


def test_excluded_public_files(tmp_path, capsys):
    project = create_project(tmp_path, {"index.html": "<p>x</p>"}, "exclude_files:\n  - '*.pdf'\n")
    (project / "public" / "guide.pdf").write_bytes(b"%PDF")
    (project / "public" / "notes.txt").write_text("keep", encoding="utf-8")
    (project / "public" / "img").mkdir()
    (project / "public" / "img" / "scan.PDF").write_bytes(b"%PDF")

    result = build_site(project)
    dist = project / "dist"
    assert not (dist / "guide.pdf").exists()
    assert not (dist / "img" / "scan.PDF").exists()
    assert (dist / "notes.txt").read_text(encoding="utf-8") == "keep"
    assert result.report("public").counters["excluded"] == 2
    assert "Skipping excluded file: guide.pdf" in capsys.readouterr().out


def test_layouts_and_collections(tmp_path):
    project = create_project(
        tmp_path,
        {
            "about.md": "---\nlayout: base.jinja\ntitle: About\n---\n# About us\n",
            "nav.liquid": "{% for item in nav %}<a>{{ item.label }}</a>{% endfor %}",
            "list.mustache": "{{#nav}}[{{label}}]{{/nav}}",
            "items.jinja": "{{ items.source }}",
        },
        "site_name: Camp\n",
    )
    src = project / "src"
    (src / "layouts" / "base.jinja").write_text(
        "<html><head><title>{{ title }} | {{ site.name }}</title></head>"
        "<body>{{ content }}</body></html>",
        encoding="utf-8",
    )
    nav = [{"label": "Home", "url": "/"}, {"label": "About", "url": "/about.html"}]
    (src / "data" / "nav.json").write_text(json.dumps(nav), encoding="utf-8")
    (src / "data" / "items.json").write_text('{"source": "data"}', encoding="utf-8")
    (src / "collections" / "items.json").write_text('{"source": "collections"}', encoding="utf-8")

    result = build_site(project)
    dist = project / "dist"
    about = (dist / "about.html").read_text(encoding="utf-8")
    assert "<title>About | Camp</title>" in about
    assert "<h1>About us</h1>" in about
    assert (dist / "nav.html").read_text(encoding="utf-8") == "<a>Home</a><a>About</a>"
    assert (dist / "list.html").read_text(encoding="utf-8") == "[Home][About]"
    assert (dist / "items.html").read_text(encoding="utf-8") == "collections"
    assert result.collections["items"] == {"source": "collections"}
    with pytest.raises(TypeError):
        result.collections["new"] = 1


def test_robots_and_sitemap_generated(tmp_path):
    project = create_project(
        tmp_path,
        {
            "index.html": "<p>home</p>",
            "blog/index.html": "<p>blog</p>",
            "about.md": "# About\n",
        },
        "site_url: https://camp.test\n",
    )
    build_site(project)
    dist = project / "dist"
    assert (dist / "robots.txt").read_text(encoding="utf-8") == (
        "User-agent: *\nAllow: /\n\nSitemap: https://camp.test/sitemap.xml\n"
    )
    sitemap = (dist / "sitemap.xml").read_text(encoding="utf-8")
    assert "<loc>https://camp.test/</loc>" in sitemap
    assert "<loc>https://camp.test/blog</loc>" in sitemap
    assert "<loc>https://camp.test/about</loc>" in sitemap
    assert "index.html" not in sitemap


def test_user_supplied_robots_and_sitemap_win(tmp_path):
    project = create_project(tmp_path, {"index.html": "<p>home</p>"})
    (project / "public" / "robots.txt").write_text("User-agent: *\nDisallow: /\n", encoding="utf-8")
    (project / "public" / "sitemap.xml").write_text("<custom/>", encoding="utf-8")
    build_site(project)
    dist = project / "dist"
    assert (dist / "robots.txt").read_text(encoding="utf-8") == "User-agent: *\nDisallow: /\n"
    assert (dist / "sitemap.xml").read_text(encoding="utf-8") == "<custom/>"


PRODUCTION_CONFIG = "minify_css: true\nminify_html: true\ncache_bust_assets: true\n"


def test_production_build_minifies_and_cache_busts(tmp_path):
    project = create_project(
        tmp_path,
        {
            "index.html": (
                "<html>\n  <head>\n    <!-- head -->\n"
                '    <link rel="stylesheet" href="/css/style.css">\n'
                "  </head>\n  <body><p>Hi</p></body>\n</html>\n"
            )
        },
        PRODUCTION_CONFIG,
    )
    (project / "public" / "css").mkdir()
    (project / "public" / "css" / "style.css").write_text(
        "body {\n  color: red;\n}\n", encoding="utf-8"
    )

    result = build_site(project)
    dist = project / "dist"
    css_files = list((dist / "css").glob("*.css"))
    assert len(css_files) == 1
    hashed = css_files[0]
    assert hashed.name.startswith("style-") and hashed.name != "style.css"
    minified = hashed.read_text(encoding="utf-8")
    assert "color:red" in minified
    assert "\n" not in minified.strip()
    assert result.asset_map == {"css/style.css": f"css/{hashed.name}"}

    html = (dist / "index.html").read_text(encoding="utf-8")
    assert f'href="/css/{hashed.name}"' in html
    assert "<!-- head -->" not in html
    assert [report.name for report in result.reports] == ["public", "pages", "css", "html", "cache-bust"]


def test_production_build_is_repeatable(tmp_path):
    project = create_project(
        tmp_path,
        {"index.html": '<link rel="stylesheet" href="/style.css">'},
        PRODUCTION_CONFIG,
    )
    (project / "public" / "style.css").write_text("p { margin: 0 }", encoding="utf-8")
    first = build_site(project).asset_map
    second = build_site(project).asset_map
    assert first == second
    assert len(list((project / "dist").glob("*.css"))) == 1


def test_dev_mode_skips_finishing(tmp_path):
    project = create_project(
        tmp_path,
        {"index.html": '<link rel="stylesheet" href="/style.css">'},
        PRODUCTION_CONFIG + "compress_photos: true\n",
    )
    (project / "public" / "style.css").write_text("p { margin: 0 }", encoding="utf-8")
    result = build_site(project, BuildOptions(dev_mode=True, skip_image_compression=True))
    dist = project / "dist"
    assert (dist / "style.css").read_text(encoding="utf-8") == "p { margin: 0 }"
    assert result.asset_map == {}
    assert [report.name for report in result.reports] == ["public", "pages"]


def test_image_compression_in_production(tmp_path):
    from PIL import Image

    project = create_project(
        tmp_path,
        {"index.html": "<p>x</p>"},
        "compress_photos: true\ncompression_settings:\n  formats: ['.webp']\n",
    )
    Image.new("RGB", (8, 8), color="blue").save(project / "public" / "hero.png")
    result = build_site(project)
    assert (project / "dist" / "hero.webp").exists()
    assert (project / "dist" / "hero.png").exists()
    assert result.report("images").counters["generated"] == 1

    skipped = build_site(project, BuildOptions(skip_image_compression=True))
    assert not (project / "dist" / "hero.webp").exists()
    assert skipped.report("images") is None


def test_output_is_cleaned_between_builds(tmp_path):
    project = create_project(tmp_path, {"index.html": "<p>x</p>"})
    (project / "dist").mkdir()
    (project / "dist" / "stale.html").write_text("old", encoding="utf-8")
    build_site(project)
    assert not (project / "dist" / "stale.html").exists()


def test_empty_pages_short_circuits(tmp_path, capsys):
    project = create_project(tmp_path, {})
    (project / "public" / "favicon.ico").write_bytes(b"icon")
    result = build_site(project)
    assert result.skipped is True
    assert result.pages == []
    assert (project / "dist" / "favicon.ico").exists()
    assert not (project / "dist" / "sitemap.xml").exists()
    assert "No pages found" in capsys.readouterr().err


def test_failing_page_is_reported_not_fatal(tmp_path, capsys):
    project = create_project(tmp_path, {"bad.jinja": "{{ broken ", "good.html": "<p>ok</p>"})
    result = build_site(project)
    assert (project / "dist" / "good.html").exists()
    assert [rel for rel, _ in result.failures] == ["bad.jinja"]
    assert "Failed to render bad.jinja" in capsys.readouterr().err


def test_hooks_from_python_config(tmp_path):
    project = create_project(tmp_path, {"index.jinja": "{{ 'quiet' | shout }}"})
    (project / "kindling_config.py").write_text(
        "def add_filters(env):\n"
        "    env.filters['shout'] = lambda value: value.upper() + '!'\n"
        "\n"
        "CONFIG = {'hooks': {'jinja_env': add_filters}}\n",
        encoding="utf-8",
    )
    build_site(project)
    assert (project / "dist" / "index.html").read_text(encoding="utf-8") == "QUIET!"


def test_shadowed_collection_warns(tmp_path, capsys):
    project = create_project(tmp_path, {"index.jinja": "{{ site.name }}|{{ collections.site.name }}"})
    (project / "src" / "data" / "site.json").write_text('{"name": "data"}', encoding="utf-8")
    build_site(project)
    assert (project / "dist" / "index.html").read_text(encoding="utf-8") == "Kindling|data"
    assert "Collection site is shadowed" in capsys.readouterr().err


def test_out_dir_override(tmp_path):
    project = create_project(tmp_path, {"index.html": "<p>x</p>"})
    result = build_site(project, BuildOptions(out_dir=Path("preview")))
    assert (project / "preview" / "index.html").exists()
    assert result.output_dir == (project / "preview").resolve()


def test_missing_project_root_is_fatal(tmp_path):
    with pytest.raises(BuildError):
        build_site(tmp_path / "does-not-exist")
