"""
Search engine URL construction and small URL helpers.
"""

from urllib.parse import urlencode, urljoin, urlparse

from crawlkit.search.models import SearchEngine, SearchType

RESULTS_PER_PAGE = 10

GOOGLE_TYPE_PARAM = {
    SearchType.IMAGE: "isch",
    SearchType.VIDEO: "vid",
    SearchType.NEWS: "nws",
}

BING_TYPE_PATH = {
    SearchType.WEB: "/search",
    SearchType.IMAGE: "/images/search",
    SearchType.VIDEO: "/videos/search",
    SearchType.NEWS: "/news/search",
}


def build_search_url(
    query: str,
    engine: SearchEngine | str,
    search_type: SearchType | str = SearchType.WEB,
    *,
    lang: str | None = None,
    region: str | None = None,
    page: int = 1,
) -> str:
    """Result page URL for ``query`` on ``engine``.

    Unknown engines fall back to DuckDuckGo. DuckDuckGo ignores ``region``
    and ``page``; web queries go to its HTML-only endpoint.
    """
    try:
        engine = SearchEngine(engine)
    except ValueError:
        engine = SearchEngine.DUCKDUCKGO
    search_type = SearchType(search_type)

    if engine is SearchEngine.GOOGLE:
        return _google_url(query, search_type, lang, region, page)
    if engine is SearchEngine.BING:
        return _bing_url(query, search_type, lang, page)
    return _duckduckgo_url(query, search_type, lang)


def _google_url(
    query: str, search_type: SearchType, lang: str | None, region: str | None, page: int
) -> str:
    params = {"q": query}
    if lang:
        params["hl"] = lang
    if region:
        params["gl"] = region
    if page > 1:
        params["start"] = str((page - 1) * RESULTS_PER_PAGE)
    if search_type in GOOGLE_TYPE_PARAM:
        params["tbm"] = GOOGLE_TYPE_PARAM[search_type]
    return f"https://www.google.com/search?{urlencode(params)}"


def _bing_url(query: str, search_type: SearchType, lang: str | None, page: int) -> str:
    params = {"q": query}
    if lang:
        params["setlang"] = lang
    if page > 1:
        params["first"] = str((page - 1) * RESULTS_PER_PAGE + 1)
    return f"https://www.bing.com{BING_TYPE_PATH[search_type]}?{urlencode(params)}"


def _duckduckgo_url(query: str, search_type: SearchType, lang: str | None) -> str:
    params = {"q": query}
    if lang:
        params["kl"] = lang

    if search_type is SearchType.IMAGE:
        params.update(iax="images", ia="images")
    elif search_type is SearchType.VIDEO:
        params.update(iax="videos", ia="videos")
    elif search_type is SearchType.NEWS:
        params.update(iar="news", ia="news")
    else:
        return f"https://html.duckduckgo.com/html/?{urlencode(params)}"
    return f"https://duckduckgo.com/?{urlencode(params)}"


def normalize_url(url: str, base_url: str) -> str:
    """Resolve ``url`` against ``base_url``; returns ``url`` unchanged on failure."""
    try:
        return urljoin(base_url, url)
    except ValueError:
        return url


def is_absolute_url(url: str) -> bool:
    return url.lower().startswith(("http://", "https://"))


def is_same_origin(url: str, base_url: str) -> bool:
    try:
        target = urlparse(urljoin(base_url, url))
        base = urlparse(base_url)
    except ValueError:
        return False
    return (target.scheme, target.netloc) == (base.scheme, base.netloc)
