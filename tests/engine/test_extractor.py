from __future__ import annotations

import pytest

from trendboard.config import ExtractorSelectors
from trendboard.engine.extractor import TrendingPageExtractor, parse_count

LISTING_HTML = """
<html><body>
<div class="Box">
  <article class="Box-row">
    <h2 class="h3 lh-condensed"><a href="/golang/go">golang / go</a></h2>
    <div class="f6 color-fg-muted mt-2">
      <a class="Link--muted d-inline-block mr-3" href="/golang/go/stargazers">120,345</a>
      <a class="Link--muted d-inline-block mr-3" href="/golang/go/forks">17,001</a>
      <span class="d-inline-block float-sm-right">1,204 stars today</span>
    </div>
  </article>
  <article class="Box-row">
    <h2 class="h3 lh-condensed"><a href="">broken row</a></h2>
    <a href="/nobody/stargazers">5</a>
  </article>
  <article class="Box-row">
    <h2 class="h3 lh-condensed"><a href="/acme/widget">acme / widget</a></h2>
    <a class="Link--muted" href="/acme/widget/stargazers">lots</a>
  </article>
  <article class="Box-row">
    <p>no link at all</p>
  </article>
</div>
</body></html>
"""


@pytest.mark.parametrize(
    ("text", "expected"),
    [("1,234", 1234), ("  42 ", 42), ("", None), (None, None), ("n/a", None)],
)
def test_parse_count(text, expected) -> None:
    assert parse_count(text) == expected


def test_extract_skips_malformed_rows_and_defaults_metrics() -> None:
    extractor = TrendingPageExtractor()
    records = extractor.extract(LISTING_HTML, "go")

    assert [record.source_url for record in records] == [
        "https://github.com/golang/go",
        "https://github.com/acme/widget",
    ]
    first, second = records
    assert first.category == "go"
    assert first.primary_metric == 120345
    assert first.secondary_metric == 17001
    assert first.delta_metric == 1204

    assert second.primary_metric == 0
    assert second.delta_metric is None
    assert second.secondary_metric is None


def test_extract_falls_back_to_secondary_row_selector() -> None:
    html = """
    <div class="Box-row">
      <h2><a href="/solo/project">solo</a></h2>
      <span>1 star today</span>
    </div>
    """
    records = TrendingPageExtractor().extract(html, "")
    assert len(records) == 1
    assert records[0].category == ""
    assert records[0].source_url == "https://github.com/solo/project"
    assert records[0].delta_metric == 1


def test_extract_with_custom_selectors_and_base_url() -> None:
    selectors = ExtractorSelectors(row="li.item", link="a.title", primary="b.score")
    html = '<ul><li class="item"><a class="title" href="/x">x</a><b class="score">7</b></li></ul>'
    records = TrendingPageExtractor(selectors, base_url="https://example.org").extract(html, "misc")
    assert records[0].source_url == "https://example.org/x"
    assert records[0].primary_metric == 7


def test_extract_empty_content_yields_nothing() -> None:
    extractor = TrendingPageExtractor()
    assert extractor.extract("", "go") == []
    assert extractor.extract("<html><body><p>nothing trending</p></body></html>", "go") == []
