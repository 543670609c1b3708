"""
Tests for URL match-pattern blocking.
"""

import sys
import unittest
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import radio_garden as rg


class TestDefaultBlocklist(unittest.TestCase):
    """The shipped ad/tracker list."""

    def setUp(self):
        self.request_filter = rg.RequestFilter(rg.DEFAULT_BLOCKLIST)

    def test_has_all_patterns(self):
        self.assertEqual(len(self.request_filter.patterns), 25)

    def test_blocks_exact_ad_hosts(self):
        for url in (
            "https://securepubads.g.doubleclick.net/tag/js/gpt.js",
            "https://ads.pubmatic.com/AdServer/js/pwt.js",
            "http://adservice.google.ro/adsid/integrator.js?domain=radio.garden",
        ):
            self.assertTrue(self.request_filter.should_block(url), url)

    def test_blocks_subdomains_and_bare_domain(self):
        self.assertTrue(self.request_filter.should_block("https://static.criteo.com/js/ld/publishertag.js"))
        self.assertTrue(self.request_filter.should_block("https://criteo.com/"))
        self.assertTrue(self.request_filter.should_block("wss://ib.adnxs.com/socket"))

    def test_host_match_is_case_insensitive(self):
        self.assertTrue(self.request_filter.should_block("https://ADS.PubMatic.com/x.js"))

    def test_allows_site_traffic(self):
        for url in (
            "https://radio.garden/",
            "https://radio.garden/api/ara/content/places",
            "https://notcriteo.com/",
            "https://criteo.com.example.org/",
        ):
            self.assertFalse(self.request_filter.should_block(url), url)

    def test_wildcard_scheme_skips_other_schemes(self):
        self.assertFalse(self.request_filter.should_block("ftp://ads.pubmatic.com/file"))
        self.assertFalse(self.request_filter.should_block("data:text/plain,hello"))


class TestCustomPatterns(unittest.TestCase):

    def test_path_and_scheme_are_honoured(self):
        request_filter = rg.RequestFilter(["https://example.com/ads/*"])
        self.assertTrue(request_filter.should_block("https://example.com/ads/banner.png"))
        self.assertFalse(request_filter.should_block("https://example.com/news"))
        self.assertFalse(request_filter.should_block("http://example.com/ads/banner.png"))

    def test_query_is_part_of_path(self):
        request_filter = rg.RequestFilter(["*://example.com/track?id=*"])
        self.assertTrue(request_filter.should_block("https://example.com/track?id=5"))
        self.assertFalse(request_filter.should_block("https://example.com/track"))

    def test_invalid_pattern_rejected(self):
        with self.assertRaises(ValueError):
            rg.RequestFilter(["doubleclick.net"])

    def test_empty_filter_blocks_nothing(self):
        self.assertFalse(rg.RequestFilter([]).should_block("https://pubads.g.doubleclick.net/"))


if __name__ == "__main__":
    unittest.main()
