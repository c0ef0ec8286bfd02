"""Region table: country code -> localized search host and language."""

from dataclasses import dataclass
from urllib.parse import urlencode


@dataclass(frozen=True)
class RegionMapping:
    country_code: str
    country_name: str
    domain: str
    language: str


def _region(code: str, name: str, domain: str, language: str) -> tuple[str, RegionMapping]:
    return code, RegionMapping(country_code=code, country_name=name, domain=domain, language=language)


REGION_MAP: dict[str, RegionMapping] = dict(
    [
        # Americas
        _region("US", "United States", "www.google.com", "en"),
        _region("CA", "Canada", "www.google.ca", "en"),
        _region("BR", "Brazil", "www.google.com.br", "pt-BR"),
        _region("MX", "Mexico", "www.google.com.mx", "es"),
        _region("AR", "Argentina", "www.google.com.ar", "es"),
        # Europe
        _region("GB", "United Kingdom", "www.google.co.uk", "en-GB"),
        _region("DE", "Germany", "www.google.de", "de"),
        _region("FR", "France", "www.google.fr", "fr"),
        _region("IT", "Italy", "www.google.it", "it"),
        _region("ES", "Spain", "www.google.es", "es"),
        _region("NL", "Netherlands", "www.google.nl", "nl"),
        _region("RU", "Russia", "www.google.ru", "ru"),
        _region("PL", "Poland", "www.google.pl", "pl"),
        _region("TR", "Turkey", "www.google.com.tr", "tr"),
        # Asia Pacific
        _region("CN", "China", "www.google.com", "zh-CN"),
        _region("HK", "Hong Kong", "www.google.com.hk", "zh-HK"),
        _region("TW", "Taiwan", "www.google.com.tw", "zh-TW"),
        _region("JP", "Japan", "www.google.co.jp", "ja"),
        _region("KR", "South Korea", "www.google.co.kr", "ko"),
        _region("SG", "Singapore", "www.google.com.sg", "en"),
        _region("IN", "India", "www.google.co.in", "en"),
        _region("ID", "Indonesia", "www.google.co.id", "id"),
        _region("TH", "Thailand", "www.google.co.th", "th"),
        _region("VN", "Vietnam", "www.google.com.vn", "vi"),
        _region("AU", "Australia", "www.google.com.au", "en"),
        _region("NZ", "New Zealand", "www.google.co.nz", "en"),
        # Middle East & Africa
        _region("SA", "Saudi Arabia", "www.google.com.sa", "ar"),
        _region("AE", "United Arab Emirates", "www.google.ae", "en"),
        _region("ZA", "South Africa", "www.google.co.za", "en"),
        _region("EG", "Egypt", "www.google.com.eg", "ar"),
    ]
)

DEFAULT_REGION = "US"


def is_country_supported(code: str | None) -> bool:
    return bool(code) and code.strip().upper() in REGION_MAP


def get_region_mapping(code: str | None, default: str = DEFAULT_REGION) -> RegionMapping:
    """Look up ``code`` case-insensitively.

    Unknown or empty codes fall back to ``default`` (and to US if the default
    itself is unknown). Never raises.
    """
    if is_country_supported(code):
        return REGION_MAP[code.strip().upper()]
    return REGION_MAP.get((default or DEFAULT_REGION).upper(), REGION_MAP[DEFAULT_REGION])


def build_search_url(query: str, mapping: RegionMapping) -> str:
    """Localized results URL, e.g. ``https://www.google.co.jp/search?q=..&hl=ja&gl=jp``."""
    params = urlencode({"q": query, "hl": mapping.language, "gl": mapping.country_code.lower()})
    return f"https://{mapping.domain}/search?{params}"


def cookie_domain(mapping: RegionMapping) -> str:
    """Domain key for cookie snapshots (``www.`` stripped)."""
    return mapping.domain.removeprefix("www.")


def get_supported_countries() -> list[str]:
    return sorted(REGION_MAP)


def get_country_list() -> list[dict[str, str]]:
    return [{"code": code, "name": REGION_MAP[code].country_name} for code in sorted(REGION_MAP)]


__all__ = [
    "DEFAULT_REGION",
    "REGION_MAP",
    "RegionMapping",
    "build_search_url",
    "cookie_domain",
    "get_country_list",
    "get_region_mapping",
    "get_supported_countries",
    "is_country_supported",
]
