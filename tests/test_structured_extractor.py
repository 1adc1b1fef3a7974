from bs4 import BeautifulSoup

from adaptive_scraper.normalizers.records import SelectorMap
from adaptive_scraper.services.structured_extractor import StructuredExtractor, find_best_link

from conftest import LISTING_SELECTORS

BASE = "https://example.com/shop/list.html"


class TestScoping:
    """Les sélecteurs de champ sont évalués dans chaque container uniquement."""

    def test_fields_do_not_leak_between_containers(self):
        html = """
        <div class="row"><span class="t">First</span></div>
        <div class="row"><span class="other">no title here</span></div>
        """
        records = StructuredExtractor().extract(html, SelectorMap(container=".row", title=".t"), BASE)
        assert [r.title for r in records] == ["First", ""]

    def test_identical_markup_keeps_one_record_per_container(self):
        html = """
        <div class="card"><h3 class="title">2024 Big Tex 14LP</h3><span class="price" data-sale="yes">$1,000</span></div>
        <div class="card"><h3 class="title">2019 PJ Dump</h3><span class="price" data-sale="no">$2,500</span></div>
        """
        selectors = SelectorMap(container=".card", title=".title", price='.price[data-sale="yes"]')
        records = StructuredExtractor().extract(html, selectors, BASE)

        assert len(records) == len(BeautifulSoup(html, "html.parser").select(".card"))
        assert [r.title for r in records] == ["2024 Big Tex 14LP", "2019 PJ Dump"]
        # le prix du premier container ne déborde pas sur le second
        assert [r.price for r in records] == ["$1,000", ""]

    def test_text_is_collapsed_and_trimmed(self):
        html = '<li class="x"><b class="t">  Big\n\n   Tex   70CH </b></li>'
        records = StructuredExtractor().extract(html, SelectorMap(container=".x", title=".t"), BASE)
        assert records[0].title == "Big Tex 70CH"

    def test_missing_selectors_give_empty_fields(self):
        html = '<div class="c"><p>text</p></div>'
        records = StructuredExtractor().extract(html, SelectorMap(container=".c"), BASE)
        record = records[0]
        assert record.title == record.price == record.image == record.stock == ""

    def test_invalid_field_selector_gives_empty_field(self):
        html = '<div class="c"><p class="t">ok</p></div>'
        selectors = SelectorMap(container=".c", title=".t", price="[[[")
        records = StructuredExtractor().extract(html, selectors, BASE)
        assert records[0].title == "ok"
        assert records[0].price == ""

    def test_invalid_container_returns_empty_list(self):
        assert StructuredExtractor().extract("<div></div>", SelectorMap(container="div[["), BASE) == []

    def test_no_container_match(self):
        assert StructuredExtractor().extract("<div></div>", SelectorMap(container=".none"), BASE) == []


class TestLinksAndImages:

    def test_listing_scenario(self, listing_html, listing_url):
        records = StructuredExtractor().extract(listing_html, SelectorMap.from_raw(LISTING_SELECTORS), listing_url)

        assert len(records) == 3
        assert [r.price for r in records] == ["$1,000", "$2,500", "Call for price"]
        assert [r.image for r in records] == [
            "https://dealer.example.com/img/a.jpg",
            "https://cdn.example.com/b.jpg",
            "https://dealer.example.com/trailers/c.jpg",
        ]
        assert records[0].link == "https://dealer.example.com/inventory/a"
        assert records[1].link == "https://dealer.example.com/inventory/b"
        # href="#" -> repli sur data-url
        assert records[2].link == "https://dealer.example.com/inventory/c"

    def test_best_link_from_onclick(self):
        soup = BeautifulSoup(
            """<div class="c"><button onclick="window.location.href='/units/42'">View</button></div>""",
            "html.parser",
        )
        assert find_best_link(soup.select_one(".c"), BASE) == "https://example.com/units/42"

    def test_best_link_from_parent_anchor(self):
        soup = BeautifulSoup('<a href="/units/7"><div class="c">Unit</div></a>', "html.parser")
        assert find_best_link(soup.select_one(".c"), BASE) == "https://example.com/units/7"

    def test_best_link_skips_placeholders(self):
        soup = BeautifulSoup(
            '<div class="c"><a href="#">x</a><a href="details.html">y</a></div>',
            "html.parser",
        )
        assert find_best_link(soup.select_one(".c"), BASE) == "https://example.com/shop/details.html"

    def test_best_link_none_found(self):
        soup = BeautifulSoup('<div class="c"><a href="#">x</a></div>', "html.parser")
        assert find_best_link(soup.select_one(".c"), BASE) == ""

    def test_container_that_is_an_anchor(self):
        html = '<a class="c" href="/u/1"><span class="t">One</span></a>'
        records = StructuredExtractor().extract(html, SelectorMap(container="a.c", title=".t"), BASE)
        assert records[0].link == "https://example.com/u/1"
