from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from conftest import write
from molesk_backend.cache import ContentCache
from molesk_backend.config import Settings
from molesk_backend.errors import ContentNotFoundError
from molesk_backend.tree import EMPTY_TREE, FileEntry, FolderTreeBuilder, sort_entries


def _builder(root: Path, **options) -> FolderTreeBuilder:
    settings = Settings(content_root=root, title="Site", watch=False, **options)
    return FolderTreeBuilder(settings, ContentCache())


def _top_level_labels(html: str) -> list[str]:
    soup = BeautifulSoup(html, "html.parser")
    labels = []
    for li in soup.ul.find_all("li", recursive=False):
        node = li.find(["a", "span"], recursive=False)
        labels.append(node.get_text(strip=True))
    return labels


def _count_walks(monkeypatch, builder: FolderTreeBuilder) -> list[Path]:
    calls: list[Path] = []
    original = builder._collect_items

    def counting(directory, content_root, active_path):
        calls.append(directory)
        return original(directory, content_root, active_path)

    monkeypatch.setattr(builder, "_collect_items", counting)
    return calls


def test_dated_and_undated_files_ordering(tmp_path):
    write(tmp_path / "b.md", "no date")
    write(tmp_path / "a.md", "no date")
    write(tmp_path / "c.md", "---\ndate: 2024-02-01\n---\n")
    write(tmp_path / "d.md", "---\ndate: 2024-01-01\n---\n")

    html = _builder(tmp_path).generate()

    # Pinned output of the pairwise comparator over a name-ordered listing.
    assert _top_level_labels(html) == ["A", "B", "C", "D"]
    dates = [div.get_text() for div in BeautifulSoup(html, "html.parser").select("div.file-date")]
    assert dates == ["2024-02-01", "2024-01-01"]


def test_dated_files_sort_newest_first():
    entries = [
        FileEntry(name="old.md", full_path=Path("old.md"), is_directory=False, date="2023-01-01"),
        FileEntry(name="new.md", full_path=Path("new.md"), is_directory=False, date="2024-06-01"),
        FileEntry(name="mid.md", full_path=Path("mid.md"), is_directory=False, date="2024-01-01"),
    ]
    assert [e.name for e in sort_entries(entries)] == ["new.md", "mid.md", "old.md"]


def test_directories_sort_after_files_and_by_name():
    entries = [
        FileEntry(name="zeta", full_path=Path("zeta"), is_directory=True, content="<ul></ul>"),
        FileEntry(name="Alpha", full_path=Path("Alpha"), is_directory=True, content="<ul></ul>"),
        FileEntry(name="z.md", full_path=Path("z.md"), is_directory=False),
        FileEntry(name="b.md", full_path=Path("b.md"), is_directory=False),
    ]
    assert [e.name for e in sort_entries(entries)] == ["b.md", "z.md", "Alpha", "zeta"]


def test_directory_without_markdown_is_pruned(tmp_path):
    write(tmp_path / "page.md", "x")
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "photo.jpg").write_bytes(b"jpg")

    html = _builder(tmp_path).generate()

    assert "Images" not in html
    assert _top_level_labels(html) == ["Page"]


def test_nested_eligible_directory_is_included(tmp_path):
    write(tmp_path / "deep" / "nested" / "leaf.md", "# Leaf")
    (tmp_path / "deep" / "only.jpg").write_bytes(b"jpg")

    html = _builder(tmp_path).generate()
    soup = BeautifulSoup(html, "html.parser")

    folders = [span.get_text(strip=True) for span in soup.select("li.folder.open > span")]
    assert folders == ["Deep", "Nested"]
    assert soup.find("a", href="/content/deep/nested/leaf.md") is not None


def test_dotfiles_and_ignored_names_are_skipped(tmp_path):
    write(tmp_path / ".hidden.md", "x")
    write(tmp_path / ".drafts" / "wip.md", "x")
    write(tmp_path / "README.md", "x")
    write(tmp_path / "kept.md", "x")

    html = _builder(tmp_path, ignored_files=("readme",)).generate()

    assert _top_level_labels(html) == ["Kept"]


def test_only_markdown_and_text_files_are_listed(tmp_path):
    write(tmp_path / "notes.txt", "x")
    write(tmp_path / "data.json", "{}")
    (tmp_path / "pic.png").write_bytes(b"png")

    assert _top_level_labels(_builder(tmp_path).generate()) == ["Notes"]


def test_home_file_renders_as_folder_styled_link_without_date(tmp_path):
    write(tmp_path / "home.md", "---\ndate: 2024-01-01\n---\n")
    html = _builder(tmp_path).generate()

    assert html == (
        '<ul><li class="folder"><a href="/content/home.md">'
        '<i class="fas fa-home"></i> Home</a></li></ul>'
    )


def test_file_link_encodes_path_and_escapes_text(tmp_path):
    write(tmp_path / "a&b" / "my <page>.md", "---\ndate: \"<2024>\"\n---\n")

    html = _builder(tmp_path).generate()

    assert 'href="/content/a%26b/my%20%3Cpage%3E.md"' in html
    assert "<span><i class=\"fas fa-folder-open\"></i> A&amp;b</span>" in html
    assert "My &lt;page&gt;</a>" in html
    assert '<div class="file-date">&lt;2024&gt;</div>' in html


def test_empty_root_renders_empty_list(tmp_path):
    assert _builder(tmp_path).generate() == EMPTY_TREE


def test_second_call_is_served_from_cache(tmp_path, monkeypatch):
    write(tmp_path / "a.md", "x")
    write(tmp_path / "sub" / "b.md", "x")
    builder = _builder(tmp_path)
    walks = _count_walks(monkeypatch, builder)

    first = builder.generate()
    walks_after_first = len(walks)
    second = builder.generate()

    assert walks_after_first == 2
    assert len(walks) == walks_after_first
    assert second == first


def test_invalidate_forces_fresh_walk(tmp_path, monkeypatch):
    write(tmp_path / "a.md", "x")
    builder = _builder(tmp_path)
    walks = _count_walks(monkeypatch, builder)

    before = builder.generate()
    write(tmp_path / "b.md", "x")
    assert builder.generate() == before

    builder.cache.invalidate()
    after = builder.generate()

    assert len(walks) == 2
    assert _top_level_labels(after) == ["A", "B"]


def test_active_path_marks_link_and_uses_own_cache_entry(tmp_path):
    write(tmp_path / "a.md", "x")
    write(tmp_path / "b.md", "x")
    builder = _builder(tmp_path)

    plain = builder.generate()
    active = builder.generate(active_path="b.md")

    assert 'class="active"' not in plain
    assert '<a href="/content/b.md" class="active">' in active
    assert builder.cache.get_tree((str(tmp_path), "b.md")) == active
    assert builder.cache.get_tree((str(tmp_path), None)) == plain


def test_missing_root_raises_not_found(tmp_path):
    builder = _builder(tmp_path / "missing")
    with pytest.raises(ContentNotFoundError):
        builder.generate()
    assert builder.generate_or_empty() == EMPTY_TREE


def test_unreadable_file_is_skipped(tmp_path, monkeypatch):
    write(tmp_path / "good.md", "x")
    broken = write(tmp_path / "broken.md", "x")
    original = Path.read_text

    def flaky_read(self, *args, **kwargs):
        if self == broken:
            raise PermissionError("denied")
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Path, "read_text", flaky_read)

    assert _top_level_labels(_builder(tmp_path).generate()) == ["Good"]


def test_impossible_date_does_not_break_tree(tmp_path):
    write(tmp_path / "good.md", "---\ndate: 2024-01-01\n---\n")
    write(tmp_path / "bad.md", "---\ndate: 2024-13-45\n---\n")

    html = _builder(tmp_path).generate()
    soup = BeautifulSoup(html, "html.parser")

    assert _top_level_labels(html) == ["Bad", "Good"]
    assert [div.get_text() for div in soup.select("div.file-date")] == ["2024-01-01"]
