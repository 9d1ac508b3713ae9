"""
Letterboxd profile: URL builders, slug helpers and extraction against
trimmed copies of real page markup.
"""

import pytest

from fakesite import FakeFetcher
from graphcrawl.controller import CrawlController
from graphcrawl.extractor import Extractor, to_item_record
from graphcrawl.infra.soup import SoupDocument
from graphcrawl.models import PageKind
from plugins.letterboxd.site import LetterboxdSite, film_slug, member_id, parse_rating

CAST = "".join(
    f'<a class="text-slug tooltip" href="/actor/actor-{n}/">Actor {n}</a>' for n in range(1, 13)
)

FILM_PAGE = f"""
<html>
<head>
  <meta property="og:title" content="Parasite (2019)">
  <meta name="description" content="Meta synopsis.">
  <meta name="twitter:data1" content="Bong Joon-ho">
  <meta name="twitter:data2" content="4.56 out of 5">
</head>
<body>
  <h1 class="headline-1 filmtitle"><span class="name">Parasite</span></h1>
  <div class="releaseyear"><a href="/films/year/2019/">2019</a></div>
  <ul class="film-stats">
    <li class="stat filmstat-watches">
      <a class="has-icon icon-watched" data-original-title="Watched by 2,345,678&nbsp;members"
         href="/film/parasite-2019/members/">2.3M</a>
    </li>
  </ul>
  <div class="review body-text">
    <div class="truncate"><p>Greed and class discrimination threaten the newly formed symbiotic relationship.</p></div>
  </div>
  <div id="tab-cast"><div class="cast-list text-sluglist">{CAST}</div>
    <a id="show-cast-overflow" href="#">Show All</a></div>
  <div id="tab-crew"><a href="/director/bong-joon-ho/">Bong Joon-ho</a></div>
  <div id="tab-genres">
    <a href="/films/genre/thriller/">Thriller</a>
    <a href="/films/genre/comedy/">Comedy</a>
    <a href="/films/theme/crime-drugs-and-gangsters/">Crime, drugs and gangsters</a>
    <a href="/films/mini-theme/class-divide/">Class divide</a>
  </div>
</body>
</html>
"""

META_ONLY_PAGE = """
<html><head>
  <meta property="og:title" content="Okja (2017)">
  <meta name="description" content="A young girl risks everything.">
  <meta name="twitter:data1" content="Bong Joon-ho">
  <meta name="twitter:data2" content="3.71 out of 5">
</head><body><p class="credits"><a href="/actor/ahn-seo-hyun/">Ahn Seo-hyun</a></p></body></html>
"""

LISTING_CLASSIC = """
<ul class="poster-list">
  <li class="poster-container"><div class="film-poster" data-film-slug="parasite-2019"></div></li>
  <li class="poster-container"><div class="film-poster" data-film-slug="okja"></div></li>
</ul>
"""

LISTING_REACT = """
<ul class="poster-list">
  <li><div class="react-component" data-item-slug="parasite-2019"></div></li>
  <li><div class="react-component" data-item-slug="okja"></div></li>
</ul>
"""

REVIEWS_PAGE = """
<ul class="film-list">
  <li class="film-detail"><a class="avatar" href="/alice/"><img alt="Alice"></a></li>
  <li class="film-detail"><a class="avatar" href="/bob/"><img alt="Bob"></a></li>
  <li class="film-detail"><a class="avatar" href="/alice/"><img alt="Alice"></a></li>
</ul>
"""

HISTORY_PAGE = """
<ul class="film-list">
  <li class="film-detail">
    <div class="film-poster" data-film-slug="parasite-2019"></div>
    <span class="rating -green rated-8"></span>
    <div class="body-text"><p>Class warfare, beautifully staged.</p></div>
  </li>
  <li class="film-detail">
    <a href="/alice/film/okja/">Okja</a>
    <span class="rating">★★★½</span>
    <div class="body-text"><p>Big pig, bigger heart.</p></div>
  </li>
</ul>
"""


@pytest.fixture
def lb():
    return LetterboxdSite()


def _doc(html: str) -> SoupDocument:
    return SoupDocument("https://letterboxd.com/test/", html)


def test_urls(lb):
    assert lb.name == "letterboxd"
    assert lb.listing_url(3) == "https://letterboxd.com/films/popular/page/3/"
    assert lb.item_url("parasite-2019") == "https://letterboxd.com/film/parasite-2019/"
    assert lb.relations_url("okja") == "https://letterboxd.com/film/okja/reviews/"
    assert lb.actor_url("alice") == "https://letterboxd.com/alice/films/reviews/"
    assert LetterboxdSite("http://localhost:8000/").item_url("x") == "http://localhost:8000/film/x/"


def test_slug_helpers():
    assert film_slug("parasite-2019") == "parasite-2019"
    assert film_slug("/film/parasite-2019/") == "parasite-2019"
    assert film_slug("/alice/film/okja/?ref=x") == "okja"
    assert film_slug("/films/popular/") == ""
    assert member_id("/alice/") == "alice"
    assert member_id("https://letterboxd.com/bob/films/") == "bob"
    assert member_id("") == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        ("rating -green rated-8", 8),
        ("rated-10", 10),
        ("★★★½", 7),
        ("½", 1),
        ("★" * 6, 10),
        ("rating", 0),
        ("", 0),
    ],
)
def test_parse_rating(value, expected):
    assert parse_rating(value) == expected


async def test_full_film_page(lb):
    result = await Extractor(lb).extract(_doc(FILM_PAGE), PageKind.ITEM)
    record = to_item_record("parasite-2019", result)

    assert result.complete
    assert record.title == "Parasite"
    assert record.year == 2019
    assert record.popularity == 2_345_678
    assert record.score == 4.56
    assert record.synopsis.startswith("Greed and class discrimination")
    assert record.tags == ["Thriller", "Comedy"]
    assert record.secondary_tags == ["Crime, drugs and gangsters", "Class divide"]
    assert record.contributors == ["Bong Joon-ho"]
    assert len(record.participants) == 10
    assert record.participants[0] == "Actor 1"


async def test_meta_only_page_falls_back(lb):
    result = await Extractor(lb).extract(_doc(META_ONLY_PAGE), PageKind.ITEM)
    record = to_item_record("okja", result)

    assert record.title == "Okja"
    assert record.year == 2017
    assert record.score == 3.71
    assert record.synopsis == "A young girl risks everything."
    assert record.contributors == ["Bong Joon-ho"]
    assert record.participants == ["Ahn Seo-hyun"]
    assert sorted(result.missing) == ["popularity", "secondary_tags", "tags"]


@pytest.mark.parametrize("html", [LISTING_CLASSIC, LISTING_REACT])
async def test_listing_in_both_markups(lb, html):
    result = await Extractor(lb).extract(_doc(html), PageKind.LISTING)

    assert result.values["item_ids"] == ["parasite-2019", "okja"]


async def test_reviews_page_lists_each_member_once(lb):
    result = await Extractor(lb).extract(_doc(REVIEWS_PAGE), PageKind.RELATIONS)

    assert result.values["actor_ids"] == ["alice", "bob"]


async def test_history_rows(lb):
    result = await Extractor(lb).extract(_doc(HISTORY_PAGE), PageKind.ACTOR_HISTORY)

    assert result.rows == [
        {"item_id": "parasite-2019", "rating": 8, "text": "Class warfare, beautifully staged."},
        {"item_id": "okja", "rating": 7, "text": "Big pig, bigger heart."},
    ]


async def test_crawl_follows_reviewers_to_new_films(lb, frontier, store, settings):
    fetcher = FakeFetcher(
        {
            lb.listing_url(1): LISTING_CLASSIC.replace(
                '<li class="poster-container"><div class="film-poster" data-film-slug="okja"></div></li>',
                "",
            ),
            lb.item_url("parasite-2019"): FILM_PAGE,
            lb.relations_url("parasite-2019"): REVIEWS_PAGE.replace("/bob/", "/alice/"),
            lb.actor_url("alice"): HISTORY_PAGE,
            lb.item_url("okja"): META_ONLY_PAGE,
        }
    )
    controller = CrawlController(lb, fetcher, frontier, store, settings=settings)

    progress = await controller.run(target=2, max_frontier_size=10)

    assert progress.processed == 2
    assert progress.relations_stored == 2
    assert (await store.items.get("okja")).title == "Okja"
    relations = await store.relations.for_item("parasite-2019")
    assert [(r.actor_id, r.rating) for r in relations] == [("alice", 8)]
