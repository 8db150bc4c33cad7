import unittest
from datetime import datetime

from torrentscout.models.search_result import SourceId, UNKNOWN_SIZE
from torrentscout.sources.archive import ArchiveSource
from torrentscout.sources.torrentdownloads import TorrentDownloadsSource
from torrentscout.sources.x1337 import X1337Source
from torrentscout.sources.ygg import YggSource, format_timestamp

ARCHIVE_PAGE = """
<div class="results">
  <div class="item-ttl C C2">
    <a href="/details/count_monte_cristo_0711_librivox" title="The Count of Monte Cristo">
      <div class="tile-img"></div>
      <div class="ttl">The Count of Monte Cristo</div>
    </a>
  </div>
  <div class="item-ttl C C2"><span>no link here</span></div>
  <div class="item-ttl C C2"><a href="/details/montecristo1934"><div class="ttl">Monte Cristo (1934)</div></a></div>
</div>
"""

X1337_PAGE = """
<table class="table-list">
  <thead><tr><th>name</th><th>se</th><th>le</th><th>time</th><th>size</th><th>uploader</th></tr></thead>
  <tbody>
    <tr>
      <td class="coll-1 name"><a href="/sub/42/0/" class="icon"><i class="flaticon-movie"></i></a><a href="/torrent/123/Monte-Cristo-2002/">Monte Cristo 2002</a></td>
      <td class="coll-2 seeds">1,204</td>
      <td class="coll-3 leeches">98</td>
      <td class="coll-date">Mar. 3rd '19</td>
      <td class="coll-4 size mob-uploader">1.4 GB<span class="seeds">1,204</span></td>
      <td class="coll-5 uploader"><a href="/user/dumas/">dumas</a></td>
    </tr>
    <tr>
      <td class="coll-1 name"><a href="/sub/42/0/" class="icon"></a></td>
      <td class="coll-2 seeds">3</td>
    </tr>
  </tbody>
</table>
"""

_TD_JUNK = "".join(f'<div class="junk">ad {i}</div>' for i in range(10))
_TD_TAIL = '<div class="pager">1 2</div><div class="footer">footer</div>'
TORRENTDOWNLOADS_PAGE = (
    '<div class="inner_container">'
    + _TD_JUNK
    + '<div class="grey_bar3"><p><a href="/torrent/1/monte-cristo">Monte Cristo</a></p>'
      '<span>Movies</span><span>3</span><span>12</span><span>700 MB</span></div>'
    + '<div class="grey_bar3"><p>no link</p><span>x</span></div>'
    + '<div class="grey_bar3"><p><a href="/torrent/2/dumas">Dumas Collection</a></p>'
      '<span>Books</span><span>0</span><span>?</span></div>'
    + _TD_TAIL
    + '</div>'
)

YGG_PAGE = """
<table class="table">
  <thead><tr><th>type</th><th>name</th></tr></thead>
  <tbody>
    <tr>
      <td><div class="hidden">2145</div><a href="/engine/search?category=2145">film</a></td>
      <td><a id="torrent_name" href="https://yggtorrent.to/torrent/filmvideo/film/123-monte-cristo">Monte Cristo</a></td>
      <td><a target="123" id="get_nfo">nfo</a></td>
      <td>4</td>
      <td><div class="hidden">1552000000</div><span class="ico_clock-o"></span>5 ans</td>
      <td>1.21Go</td>
      <td>230</td>
      <td>17</td>
      <td>2</td>
    </tr>
    <tr><td><a href="/cat">only one link</a></td></tr>
  </tbody>
</table>
"""


class TestArchiveSource(unittest.TestCase):
    def test_build_search_url(self):
        url = ArchiveSource().build_search_url("Dumas")
        self.assertEqual(url, "https://archive.org/search.php?query=Dumas+AND+format%3A%22Archive+BitTorrent%22")

    def test_parse(self):
        results = ArchiveSource().parse_search_page(ARCHIVE_PAGE)
        self.assertEqual([r.name for r in results], ["The Count of Monte Cristo", "Monte Cristo (1934)"])
        first = results[0]
        self.assertEqual(first.source_id, SourceId.ARCHIVE)
        self.assertEqual(first.desc_url, "https://archive.org/details/count_monte_cristo_0711_librivox")
        self.assertEqual(first.size, UNKNOWN_SIZE)
        self.assertIsNone(first.seeders)
        self.assertEqual(first.seeders_display, "Unknown")


class TestX1337Source(unittest.TestCase):
    def test_build_search_url(self):
        self.assertEqual(X1337Source().build_search_url("monte cristo"), "https://1337x.to/search/monte%20cristo/1/")

    def test_parse(self):
        results = X1337Source().parse_search_page(X1337_PAGE)
        self.assertEqual(len(results), 1)
        r = results[0]
        self.assertEqual(r.name, "Monte Cristo 2002")
        self.assertEqual(r.desc_url, "https://1337x.to/torrent/123/Monte-Cristo-2002/")
        self.assertEqual((r.seeders, r.leechers), (1204, 98))
        self.assertEqual(r.upload_date, "Mar. 3rd '19")
        self.assertEqual(r.size, "1.4 GB")


class TestTorrentDownloadsSource(unittest.TestCase):
    def test_build_search_url(self):
        url = TorrentDownloadsSource().build_search_url("monte cristo")
        self.assertEqual(url, "https://www.torrentdownloads.me/search/?search=monte+cristo")

    def test_parse_skips_junk_blocks(self):
        results = TorrentDownloadsSource().parse_search_page(TORRENTDOWNLOADS_PAGE)
        self.assertEqual([r.name for r in results], ["Monte Cristo", "Dumas Collection"])
        first, second = results
        self.assertEqual(first.desc_url, "https://www.torrentdownloads.me/torrent/1/monte-cristo")
        self.assertEqual((first.seeders, first.leechers, first.size), (12, 3, "700 MB"))
        self.assertEqual(second.leechers, 0)
        self.assertIsNone(second.seeders)
        self.assertEqual(second.size, UNKNOWN_SIZE)

    def test_missing_container(self):
        self.assertEqual(TorrentDownloadsSource().parse_search_page("<html></html>"), [])


class TestYggSource(unittest.TestCase):
    def test_build_search_url(self):
        url = YggSource().build_search_url("monte cristo")
        self.assertEqual(url, "https://yggtorrent.to/engine/search?do=search&name=monte+cristo")

    def test_parse(self):
        results = YggSource().parse_search_page(YGG_PAGE)
        self.assertEqual(len(results), 1)
        r = results[0]
        self.assertEqual(r.name, "Monte Cristo")
        self.assertEqual(r.desc_url, "https://yggtorrent.to/torrent/filmvideo/film/123-monte-cristo")
        self.assertEqual(r.size, "1.21Go")
        self.assertEqual((r.seeders, r.leechers), (17, 2))
        self.assertEqual(r.upload_date, datetime.fromtimestamp(1552000000).strftime("%Y/%m/%d %H:%M"))

    def test_format_timestamp(self):
        self.assertEqual(format_timestamp("not a number"), "")
        self.assertEqual(format_timestamp(""), "")


if __name__ == "__main__":
    unittest.main()
