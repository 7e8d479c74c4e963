import unittest
from datetime import datetime, timedelta

from freshgate.extraction.content_dates import _source_key, extract_published_date

NOW = datetime(2025, 8, 25, 18, 0)


class TestExtractPublishedDate(unittest.TestCase):
    def test_meta_tag_wins(self):
        html = (
            '<html><head><meta property="article:published_time" content="2025-08-25T08:30:00"></head>'
            "<body><p>Published on August 1, 2025</p></body></html>"
        )
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 25, 8, 30), "meta"))

    def test_time_tag_date_only_is_pinned_to_noon(self):
        html = '<html><body><time datetime="2025-08-24">Yesterday</time></body></html>'
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 24, 12, 0), "time_tag"))

    def test_future_meta_is_skipped(self):
        html = (
            '<html><head><meta name="date" content="2025-09-30T10:00:00"></head>'
            "<body><p>August 24, 2025</p></body></html>"
        )
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 24, 12, 0), "text"))

    def test_investing_data_date_epoch(self):
        html = '<html><body><div class="articleHeader"><span data-date="1756108800">Aug 25</span></div></body></html>'
        value, stage = extract_published_date(html, source_id="investing_news", now=NOW)
        self.assertEqual(value, datetime.fromtimestamp(1756108800))
        self.assertEqual(stage, "selector:investing")

    def test_millisecond_epoch(self):
        html = '<html><body><span data-date="1756108800000">Aug 25</span></body></html>'
        value, _ = extract_published_date(html, url="https://www.investing.com/news/1", now=NOW)
        self.assertEqual(value, datetime.fromtimestamp(1756108800))

    def test_ft_selector(self):
        html = '<html><body><span class="o-date">August 22, 2025</span></body></html>'
        self.assertEqual(
            extract_published_date(html, source_id="ft_global_economy", now=NOW),
            (datetime(2025, 8, 22, 12, 0), "selector:ft"),
        )

    def test_common_date_class(self):
        html = '<html><body><div class="post-date">2025.08.23</div></body></html>'
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 23, 12, 0), "date_class"))

    def test_scripts_are_ignored_in_text_scan(self):
        html = '<html><body><script>var built = "2025-08-20";</script><p>Posted 2 hours ago</p></body></html>'
        self.assertEqual(extract_published_date(html, now=NOW), (NOW - timedelta(hours=2), "text"))

    def test_korean_labelled_date(self):
        html = "<html><body><p>등록일 2025년 8월 21일</p></body></html>"
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 21, 12, 0), "text"))

    def test_no_date(self):
        self.assertIsNone(extract_published_date("<html><body><p>No dates here</p></body></html>", now=NOW))
        self.assertIsNone(extract_published_date("", now=NOW))
        self.assertIsNone(extract_published_date("   ", now=NOW))

    def test_xml_declaration_is_tolerated(self):
        html = '<?xml version="1.0" encoding="utf-8"?><html><body><time datetime="2025-08-24T09:00:00"></time></body></html>'
        self.assertEqual(extract_published_date(html, now=NOW), (datetime(2025, 8, 24, 9, 0), "time_tag"))


class TestSourceKey(unittest.TestCase):
    def test_matches_by_source_or_host(self):
        self.assertEqual(_source_key("bloomberg_economics", ""), "bloomberg")
        self.assertEqual(_source_key("news", "https://www.mk.co.kr/news/stock/1"), "mk.co.kr")
        self.assertEqual(_source_key("news", "https://www.ft.com/content/abc"), "ft")

    def test_ft_does_not_match_substrings(self):
        self.assertIsNone(_source_key("news", "https://www.microsoft.com/blog"))
        self.assertIsNone(_source_key("aircraft_weekly", ""))


if __name__ == "__main__":
    unittest.main()
