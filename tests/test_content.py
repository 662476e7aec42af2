import asyncio
from types import MappingProxyType

from kindling.config import SiteConfig
from kindling.content import (
    PagePipeline,
    discover_pages,
    make_is_active,
    page_context,
    shadowed_collections,
)
from kindling.renderers import PageKind
from kindling.templates import SearchPath, TemplateEnvironments


def create_site(tmp_path, pages: dict[str, str], layouts: dict[str, str] | None = None):
    src = tmp_path / "src"
    search_path = SearchPath(
        layouts=src / "layouts",
        partials=src / "partials",
        pages=src / "pages",
        source=src,
    )
    for root in search_path.roots:
        root.mkdir(parents=True, exist_ok=True)
    for rel, text in pages.items():
        path = search_path.pages / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    for rel, text in (layouts or {}).items():
        (search_path.layouts / rel).write_text(text, encoding="utf-8")
    return search_path


def run_pipeline(tmp_path, search_path, config=None, collections=None):
    config = config or SiteConfig()
    output = tmp_path / "dist"
    output.mkdir(exist_ok=True)
    pipeline = PagePipeline(
        config,
        search_path.pages,
        output,
        MappingProxyType(collections or {}),
        TemplateEnvironments.create(search_path),
    )
    pages = discover_pages(search_path.pages)
    report = asyncio.run(pipeline.render_all(pages))
    return output, pages, report


def test_discover_pages(tmp_path):
    search_path = create_site(
        tmp_path,
        {
            "index.html": "",
            "blog/post.md": "",
            "blog/.draft.md": "",
            "about.html.jinja": "",
            "img/logo.png": "",
        },
    )
    pages = {page.rel: page for page in discover_pages(search_path.pages)}
    assert set(pages) == {"index.html", "blog/post.md", "about.html.jinja", "img/logo.png"}
    assert pages["blog/post.md"].output_rel == "blog/post.html"
    assert pages["blog/post.md"].url == "/blog/post.html"
    assert pages["about.html.jinja"].kind is PageKind.JINJA
    assert pages["index.html"].url == "/"
    assert pages["img/logo.png"].kind is PageKind.STATIC


def test_page_context_reserved_keys_win():
    config = SiteConfig(site_name="Camp", site_url="https://camp.test")
    collections = {"site": {"fake": True}, "nav": [1]}
    context = page_context({"title": "T"}, "<p>x</p>", config, "a.md", collections, "/a.html")
    assert context["site"]["name"] == "Camp"
    assert context["site"]["url"] == "https://camp.test"
    assert context["collections"]["site"] == {"fake": True}
    assert context["nav"] == [1]
    assert context["page"] == {
        "title": "T",
        "content": "<p>x</p>",
        "source": "a.md",
        "path": "/a.html",
        "url": "/a.html",
    }
    assert context["isActive"]("/a")
    assert shadowed_collections(collections) == ["site"]


def test_make_is_active():
    is_active = make_is_active("/about.html")
    assert is_active("/about")
    assert is_active("/about/")
    assert not is_active("/")
    assert not is_active("")
    assert make_is_active("/")("/")


def test_html_passthrough_and_static_copy(tmp_path):
    search_path = create_site(tmp_path, {"index.html": "<h1>Hello</h1>\r\n<p>{{ raw }}</p>\n"})
    (search_path.pages / "data.bin").write_bytes(b"\x00\x01binary")
    output, _, report = run_pipeline(tmp_path, search_path)
    assert (output / "index.html").read_bytes() == b"<h1>Hello</h1>\r\n<p>{{ raw }}</p>\n"
    assert (output / "data.bin").read_bytes() == b"\x00\x01binary"
    assert sorted(report.succeeded) == ["data.bin", "index.html"]
    assert report.ok


def test_markdown_override(tmp_path):
    search_path = create_site(
        tmp_path,
        {
            "forced.html": "---\nmarkdown: true\n---\n# Forced\n",
            "raw.md": "---\nmarkdown: false\n---\n# Not converted\n",
            "normal.md": "# Converted\n",
            "templated.jinja": "---\nmarkdown: true\n---\n# {{ site.name }}\n",
        },
    )
    output, _, _ = run_pipeline(tmp_path, search_path, SiteConfig(site_name="Camp"))
    assert "<h1>Forced</h1>" in (output / "forced.html").read_text(encoding="utf-8")
    assert (output / "raw.html").read_text(encoding="utf-8") == "# Not converted\n"
    assert "<h1>Converted</h1>" in (output / "normal.html").read_text(encoding="utf-8")
    assert "<h1>Camp</h1>" in (output / "templated.html").read_text(encoding="utf-8")


def test_layout_wraps_each_page_kind(tmp_path):
    search_path = create_site(
        tmp_path,
        {
            "post.md": "---\nlayout: base.jinja\ntitle: Post\n---\n# Post\n",
            "shop.liquid": "---\nlayout: base.mustache\n---\n{{ page.title | default: 'none' }}",
            "plain.html": "---\nlayout: missing.jinja\n---\n<p>plain</p>",
        },
        layouts={
            "base.jinja": "<title>{{ title }}</title>{{ content }}",
            "base.mustache": "<t>{{title}}</t>{{{content}}}",
        },
    )
    output, _, report = run_pipeline(tmp_path, search_path, SiteConfig(site_name="Camp"))
    post = (output / "post.html").read_text(encoding="utf-8")
    assert post.startswith("<title>Post</title><h1>Post</h1>")
    assert (output / "shop.html").read_text(encoding="utf-8") == "<t>Camp</t>none"
    assert (output / "plain.html").read_text(encoding="utf-8") == "<p>plain</p>"
    assert report.ok


def test_collections_and_is_active_in_templates(tmp_path):
    nav = [{"label": "Home", "url": "/"}, {"label": "About", "url": "/about"}]
    template = (
        "{% for item in nav %}{{ item.label }}"
        "{% if is_active(item.url) %}*{% endif %} {% endfor %}"
    )
    search_path = create_site(tmp_path, {"about.jinja": template, "index.jinja": template})
    output, _, _ = run_pipeline(tmp_path, search_path, collections={"nav": nav})
    assert (output / "about.html").read_text(encoding="utf-8") == "Home About* "
    assert (output / "index.html").read_text(encoding="utf-8") == "Home* About "


def test_failed_page_does_not_stop_others(tmp_path, capsys):
    search_path = create_site(
        tmp_path,
        {
            "broken.jinja": "{% if %}",
            "bad-frontmatter.md": "---\ntitle: [oops\n---\nbody",
            "good.html": "<p>ok</p>",
        },
    )
    output, _, report = run_pipeline(tmp_path, search_path)
    assert (output / "good.html").read_text(encoding="utf-8") == "<p>ok</p>"
    assert not (output / "broken.html").exists()
    assert report.succeeded == ["good.html"]
    assert sorted(rel for rel, _ in report.failed) == ["bad-frontmatter.md", "broken.jinja"]
    err = capsys.readouterr().err
    assert "Failed to render broken.jinja: Template syntax error" in err
    assert "Failed to render bad-frontmatter.md" in err


def test_frontmatter_disabled(tmp_path):
    search_path = create_site(tmp_path, {"page.html": "---\ntitle: x\n---\nbody"})
    output, _, _ = run_pipeline(tmp_path, search_path, SiteConfig(frontmatter=False))
    assert (output / "page.html").read_text(encoding="utf-8") == "---\ntitle: x\n---\nbody"


def test_mustache_pages_use_partials(tmp_path):
    search_path = create_site(
        tmp_path, {"index.mustache": "{{> header}}<ul>{{#nav}}<li>{{label}}</li>{{/nav}}</ul>"}
    )
    (search_path.partials / "header.mustache").write_text("<h1>{{site.name}}</h1>", encoding="utf-8")
    output, _, _ = run_pipeline(
        tmp_path,
        search_path,
        SiteConfig(site_name="Camp"),
        collections={"nav": [{"label": "A"}, {"label": "B"}]},
    )
    assert (output / "index.html").read_text(encoding="utf-8") == (
        "<h1>Camp</h1><ul><li>A</li><li>B</li></ul>"
    )
