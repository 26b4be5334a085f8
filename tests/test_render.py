"""Tests for the pure page builders."""

import datetime

import pytest

from rendergit_site import render
from rendergit_site.models import Commit, DiffStat, DiffStatEntry, FileEntry, GraphRow, Person

WHEN = datetime.datetime(2023, 11, 14, 22, 13, 20, tzinfo=datetime.timezone.utc)
C1 = "1" * 40
C2 = "2" * 40


def make_commit(message="Fix <everything>\n\nLonger body.", parents=(C1,)):
    who = Person("Ada <Dev>", "ada@example.org", WHEN)
    return Commit(id=C2, tree="3" * 40, parents=tuple(parents), author=who, committer=who, message=message)


class TestFileTree:
    def test_nesting_events(self):
        events = list(render.iter_tree_events(["a/b/x", "a/b/y", "a/c/z", "d"]))

        assert events == [
            ("open", "a", 1),
            ("open", "b", 2),
            ("leaf", "a/b/x", 2),
            ("leaf", "a/b/y", 2),
            ("close", "b", 2),
            ("open", "c", 2),
            ("leaf", "a/c/z", 2),
            ("close", "c", 2),
            ("close", "a", 1),
            ("leaf", "d", 0),
        ]

    def test_returning_to_a_shallower_directory_closes_deeper_ones(self):
        events = list(render.iter_tree_events(["a/b/c/x", "a/y"]))

        assert events == [
            ("open", "a", 1),
            ("open", "b", 2),
            ("open", "c", 3),
            ("leaf", "a/b/c/x", 3),
            ("close", "c", 3),
            ("close", "b", 2),
            ("leaf", "a/y", 1),
            ("close", "a", 1),
        ]

    def test_same_name_under_different_parents_is_not_shared(self):
        events = list(render.iter_tree_events(["a/lib/x", "b/lib/y"]))

        opens = [name for kind, name, _ in events if kind == "open"]
        assert opens == ["a", "lib", "b", "lib"]

    def test_rendered_tree_is_balanced(self):
        entries = [FileEntry(p, "f" * 40) for p in ["a/b/x", "a/b/y", "a/c/z", "d"]]

        out = render.render_file_tree(entries)

        assert out.count("<ul>") == out.count("</ul>") == 4
        assert '<a href="a/b/x.raw.html">x</a>' in out
        assert '<a href="d.raw.html">d</a>' in out

    def test_paths_are_quoted_in_links(self):
        out = render.render_file_tree([FileEntry("docs/read me.md", "f" * 40)])

        assert 'href="docs/read%20me.md.raw.html"' in out
        assert ">read me.md</a>" in out


class TestDiffPage:
    DIFF = (
        "diff --git a/src/app.py b/src/app.py\n"
        "index 1111111..2222222 100644\n"
        "--- a/src/app.py\n"
        "+++ b/src/app.py\n"
        "@@ -1 +1 @@\n"
        "-print('<old>')\n"
        "+print('<new>')\n"
    )

    def test_numbers_every_line(self):
        page = render.render_diff_page("demo", make_commit(), C1, "main", self.DIFF)

        assert "    1: " in page
        assert "    7: " in page
        assert "    8: " not in page

    def test_anchors_each_file(self):
        page = render.render_diff_page("demo", make_commit(), C1, "main", self.DIFF)

        assert '<a id="src/app.py"></a>' in page

    def test_escapes_content(self):
        page = render.render_diff_page("demo", make_commit(), C1, "main", self.DIFF)

        assert "<new>" not in page
        assert "&lt;new&gt;" in page
        assert "Fix &lt;everything&gt;" in page

    def test_header_uses_short_ids(self):
        page = render.render_diff_page("demo", make_commit(), C1, "main", self.DIFF)

        assert "<title>demo: diff 22222222 11111111</title>" in page
        assert '<a href="../../branches/main.html">main</a>' in page

    def test_empty_diff(self):
        page = render.render_diff_page("demo", make_commit(), C1, "main", "")

        assert "    1: " not in page

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("diff --git a/x.py b/x.py", "x.py"),
            ("diff --git a/with space.txt b/with space.txt", "with space.txt"),
            ("diff --git a/a b/c b/a b/c", "a b/c"),
            (r'diff --git "a/q\"uote.txt" "b/q\"uote.txt"', 'q"uote.txt'),
            (r'diff --git "a/back\\slash" "b/back\\slash"', "back\\slash"),
            (r'diff --git "a/tab\there" "b/tab\there"', "tab\there"),
            (r'diff --git "a/caf\303\251 \"x\"" "b/caf\303\251 \"x\""', 'caf\u00e9 "x"'),
            ("diff --git a.txt a.txt", None),
        ],
    )
    def test_diff_header_path(self, line, expected):
        assert render.diff_header_path(line) == expected

    def test_quoted_header_anchor_matches_stat_link(self):
        diff = self.DIFF.replace("diff --git a/src/app.py b/src/app.py", 'diff --git "a/q\\"uote.txt" "b/q\\"uote.txt"')

        page = render.render_diff_page("demo", make_commit(), C1, "main", diff)

        assert '<a id="q&quot;uote.txt"></a>' in page


class TestCommitIndex:
    def test_parents_and_diff_stats(self):
        commit = make_commit(parents=(C1, "4" * 40))
        stat = DiffStat((DiffStatEntry("a.txt", 2, 1), DiffStatEntry("logo.png", 0, 0, binary=True)))
        tree = [FileEntry("a.txt", "5" * 40), FileEntry("logo.png", "6" * 40)]

        page = render.render_commit_index("demo", commit, "main", [(C1, stat, ["a.txt"])], tree)

        assert f'(<a href="../../commits/{C2}/diff-to-{C1}.html">diff to parent</a>)' in page
        assert f'(<a href="../../commits/{C2}/diff-to-{"4" * 40}.html">diff to parent</a>)' in page
        assert f'<a href="../../commits/{C1}/a.txt.raw.html">old</a>' in page
        assert f'../../commits/{C1}/logo.png.raw.html' not in page
        assert "| +2 -1" in page
        assert "| Bin" in page
        assert "2 files changed, 2 insertions(+), 1 deletion(-)" in page
        assert "Committer: Ada &lt;Dev&gt; &lt;ada@example.org&gt;" in page
        assert "Date: Tue Nov 14 22:13:20 UTC 2023" in page

    def test_root_commit_has_no_parent_lines(self):
        page = render.render_commit_index("demo", make_commit(parents=()), "main", [], [])

        assert "Parent:" not in page
        assert "Diff Stat" not in page


class TestObjectPage:
    def test_escapes_and_numbers_lines(self):
        page = render.render_object_page("demo", "ab" * 20, b"<html>\nsecond line\n")

        assert "<html>\nsecond" not in page
        assert "&lt;" in page
        assert "     1: " in page
        assert "     2: " in page
        assert "     3: " not in page

    def test_binary_content_is_summarized(self):
        page = render.render_object_page("demo", "ab" * 20, b"\x89PNG\0\0" + b"x" * 2048)

        assert "Binary file, 2.0 KiB." in page
        assert "     1: " not in page

    def test_has_no_relative_links(self):
        page = render.render_object_page("demo", "ab" * 20, b"text\n")

        assert "href=" not in page

    def test_carriage_returns_count_as_line_breaks(self):
        page = render.render_object_page("demo", "ab" * 20, b"one\r\ntwo\r\n")

        assert "     2: " in page
        assert "     3: " not in page


class TestBranchAndIndex:
    def test_branch_row_links_commit(self):
        row = GraphRow(graph="&#x25CF;", commit_id=C2, rank=1)

        out = render.render_branch_row("main", row, make_commit())

        assert f'<a href="../commits/{C2}/index.html">Fix &lt;everything&gt;</a>' in out
        assert "<pre>&#x25CF;</pre>" in out

    def test_nested_branch_rows_climb_further(self):
        row = GraphRow(graph="&#x25CF;", commit_id=C2, rank=1)

        out = render.render_branch_row("topic/one", row, make_commit())

        assert f'href="../../commits/{C2}/index.html"' in out

    def test_index_without_public_url(self):
        page = render.render_index("demo", "", [render.render_index_row("main", make_commit())])

        assert "git clone" not in page
        assert '<a href="branches/main.html">main</a> Fix &lt;everything&gt;' in page

    def test_header_without_project(self):
        assert "<h1>Branch: main</h1>" in render.html_header("", "Branch: main", "../index.html")

    def test_bytes_human(self):
        assert render.bytes_human(12) == "12 B"
        assert render.bytes_human(1536) == "1.5 KiB"
