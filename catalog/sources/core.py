"""
Source adapter contract.

Every external catalog is exposed through a SourceProvider implementation.
Adapters translate their native payloads into the canonical dataclasses
defined here; the importer, scheduler and page pipeline only ever see
these types.

Multi-language values are plain dicts keyed by SourceLanguage value
("En", "Jp", ...) mapping to a list of strings.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

MultiLanguage = Dict[str, List[str]]


class SourceLanguage(str, Enum):
    EN = "En"
    JP = "Jp"
    JP_RO = "JpRo"
    FR = "Fr"
    KO = "Ko"
    KO_RO = "KoRo"
    ZH_HK = "ZhHk"
    ZH = "Zh"


class SourceSerieStatus(str, Enum):
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    HIATUS = "Hiatus"
    CANCELED = "Canceled"
    PUBLISHING = "Publishing"
    PUBLISHED = "Published"
    SCANLATING = "Scanlating"
    SCANLATED = "Scanlated"
    UNKNOWN = "Unknown"


class SourceSerieType(str, Enum):
    MANGA = "Manga"
    MANHWA = "Manhwa"
    MANHUA = "Manhua"
    WEBTOON = "Webtoon"
    LIGHTNOVEL = "Lightnovel"
    NOVEL = "Novel"
    DOUJINSHI = "Doujinshi"
    COMIC = "Comic"
    OEL = "Oel"
    UNKNOWN = "Unknown"


class SourceFilterSort(str, Enum):
    LATEST = "Latest"
    POPULARITY = "Popularity"
    RELEVANCE = "Relevance"
    ALPHABETIC = "Alphabetic"


class SourceFilterOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class SourceSerieGenre(str, Enum):
    """Canonical genre vocabulary shared by every adapter."""

    UNKNOWN = "Unknown"
    OTHER = "Other"
    FOUR_KOMA = "Four Koma"
    ACTION = "Action"
    ADAPTATION = "Adaptation"
    ADULT = "Adult"
    ADVENTURE = "Adventure"
    ALIENS = "Aliens"
    ANIMALS = "Animals"
    ANTHOLOGY = "Anthology"
    AWARD_WINNING = "Award Winning"
    BOYS_LOVE = "Boys Love"
    COMEDY = "Comedy"
    COOKING = "Cooking"
    CRIME = "Crime"
    CROSSDRESSING = "Cross-dressing"
    DELINQUENTS = "Delinquents"
    DEMONS = "Demons"
    DOUJINSHI = "Doujinshi"
    DRAMA = "Drama"
    ECCHI = "Ecchi"
    FAN_COLORED = "Fan Colored"
    FANTASY = "Fantasy"
    FULL_COLOR = "Full Color"
    GENDER_BENDER = "Gender Bender"
    GENDER_SWAP = "Gender Swap"
    GHOST = "Ghost"
    GIRLS_LOVE = "Girls Love"
    GORE = "Gore"
    GYARU = "Gyaru"
    HAREM = "Harem"
    HENTAI = "Hentai"
    HISTORICAL = "Historical"
    HORROR = "Horror"
    INCEST = "Incest"
    ISEKAI = "Isekai"
    JOSEI = "Josei"
    KIDS = "Kids"
    LOLICON = "Lolicon"
    LONG_STRIP = "Long Strip"
    MAFIA = "Mafia"
    MAGIC = "Magic"
    MAGICAL_GIRLS = "Magical Girls"
    MARTIAL_ARTS = "Martial Arts"
    MATURE = "Mature"
    MECHA = "Mecha"
    MEDICAL = "Medical"
    MILITARY = "Military"
    MONSTER_GIRLS = "Monster Girls"
    MONSTERS = "Monsters"
    MUSIC = "Music"
    MYSTERY = "Mystery"
    NINJA = "Ninja"
    OFFICE_WORKERS = "Office Workers"
    OFFICIAL_COLORED = "Official Colored"
    ONESHOT = "OneShot"
    PHILOSOPHICAL = "Philosophical"
    POLICE = "Police"
    POST_APOCALYPTIC = "Post Apocalyptic"
    PSYCHOLOGICAL = "Psychological"
    PSYCHOLOGICAL_ROMANCE = "Psychological Romance"
    REINCARNATION = "Reincarnation"
    REVERSE_HAREM = "Reverse Harem"
    ROMANCE = "Romance"
    SAMURAI = "Samurai"
    SCHOOL_LIFE = "School Life"
    SCI_FI = "Sci-fi"
    SEINEN = "Seinen"
    SELF_PUBLISHED = "Self Published"
    SEXUAL_VIOLENCE = "Sexual Violence"
    SHOTACON = "Shotacon"
    SHOUJO = "Shoujo"
    SHOUJO_AI = "Shoujo Ai"
    SHOUNEN = "Shounen"
    SHOUNEN_AI = "Shounen Ai"
    SLICE_OF_LIFE = "Slice of Life"
    SMUT = "Smut"
    SPACE = "Space"
    SPORTS = "Sports"
    SUPERHERO = "Superhero"
    SUPERNATURAL = "Supernatural"
    SURVIVAL = "Survival"
    SUSPENSE = "Suspense"
    THRILLER = "Thriller"
    TIME_TRAVEL = "Time Travel"
    TOOMICS = "Toomics"
    TRADITIONAL_GAMES = "Traditional Games"
    TRAGEDY = "Tragedy"
    VAMPIRES = "Vampires"
    VIDEO_GAMES = "Video Games"
    VILLAINESS = "Villainess"
    VIRTUAL_REALITY = "Virtual Reality"
    WEBCOMIC = "WebComic"
    WUXIA = "Wuxia"
    YAOI = "Yaoi"
    YURI = "Yuri"
    ZOMBIES = "Zombies"


@dataclass
class SupportedFilters:
    """Search filters an adapter understands."""

    query: bool = False
    order: List[SourceFilterOrder] = field(default_factory=list)
    sort: List[SourceFilterSort] = field(default_factory=list)
    artists: bool = False
    authors: bool = False
    types: List[SourceSerieType] = field(default_factory=list)
    genres_include: bool = False
    genres_exclude: bool = False
    genres: List[SourceSerieGenre] = field(default_factory=list)
    status: List[SourceSerieStatus] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "query": self.query,
            "order": [o.value for o in self.order],
            "sort": [s.value for s in self.sort],
            "artists": self.artists,
            "authors": self.authors,
            "types": [t.value for t in self.types],
            "genres": {
                "include": self.genres_include,
                "exclude": self.genres_exclude,
                "accepted_values": [g.value for g in self.genres],
            },
            "status": [s.value for s in self.status],
        }


@dataclass
class SourceInfo:
    """
    Identity and operating limits of one catalog.

    rate_limit_max requests are allowed per rate_limit_duration
    milliseconds. The scheduler derives its stagger from the same values.
    """

    id: str
    name: str
    url: str
    icon: str
    languages: List[SourceLanguage]
    version: str = "1.0.0"
    nsfw: bool = False
    search_filters: SupportedFilters = field(default_factory=SupportedFilters)
    api_url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    minimum_update_interval: int = 0
    timeout: int = 30
    can_block_scraping: bool = False
    rate_limit_max: int = 1
    rate_limit_duration: int = 1000

    @property
    def min_request_interval_ms(self) -> float:
        return self.rate_limit_duration / max(self.rate_limit_max, 1)


@dataclass
class SearchFilters:
    """Filters accepted by fetch_search."""

    query: Optional[str] = None
    order: Optional[SourceFilterOrder] = None
    sort: Optional[SourceFilterSort] = None
    artists: Optional[List[str]] = None
    authors: Optional[List[str]] = None
    types: Optional[List[SourceSerieType]] = None
    genres_include: Optional[List[SourceSerieGenre]] = None
    genres_exclude: Optional[List[SourceSerieGenre]] = None
    status: Optional[List[SourceSerieStatus]] = None
    only_enabled_translation: Optional[bool] = None


@dataclass
class SourceSerieSummary:
    id: str
    title: MultiLanguage
    cover: str


@dataclass
class SourcePaginatedResponse:
    items: List[SourceSerieSummary]
    has_next_page: bool


@dataclass
class SourceScanlationGroup:
    id: str
    name: str
    url: Optional[str] = None


@dataclass
class SourceChapter:
    id: str
    title: MultiLanguage
    chapter_number: float
    language: SourceLanguage
    date_upload: datetime
    volume_number: Optional[int] = None
    volume_name: Optional[str] = None
    external_url: Optional[str] = None
    groups: List[SourceScanlationGroup] = field(default_factory=list)


@dataclass
class SourceChaptersResult:
    chapters: List[SourceChapter]
    missing_chapters: List[float] = field(default_factory=list)


@dataclass
class SourceSerie:
    """Canonical serie record produced by fetch_serie_detail."""

    id: str
    title: MultiLanguage
    cover: str
    alternates_titles: MultiLanguage = field(default_factory=dict)
    synopsis: MultiLanguage = field(default_factory=dict)
    status: List[SourceSerieStatus] = field(default_factory=list)
    type: SourceSerieType = SourceSerieType.UNKNOWN
    genres: List[SourceSerieGenre] = field(default_factory=list)
    authors: List[str] = field(default_factory=list)
    artists: List[str] = field(default_factory=list)
    external_url: Optional[str] = None


@dataclass
class SourcePage:
    """One entry of a chapter: an image URL or an inline text block."""

    index: int
    type: str = "image"
    url: Optional[str] = None
    text: Optional[str] = None


class SourceProvider(ABC):
    """
    Capability interface implemented by every catalog adapter.

    Fetch methods are coroutines; adapters own one httpx.AsyncClient each
    and release it in close().
    """

    @abstractmethod
    def info(self) -> SourceInfo:
        """Return identity, languages, filters and rate-limit declaration."""

    @property
    def id(self) -> str:
        return self.info().id

    @abstractmethod
    def serie_url(self, serie_id: str) -> str:
        """Public URL of a serie on the catalog website."""

    @abstractmethod
    def parse_url(self, url: str) -> Optional[str]:
        """Return the external serie id for a catalog URL, or None."""

    @abstractmethod
    async def fetch_popular(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        pass

    @abstractmethod
    async def fetch_latest(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        pass

    @abstractmethod
    async def fetch_search(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        pass

    @abstractmethod
    async def fetch_serie_detail(self, serie_id: str) -> SourceSerie:
        pass

    @abstractmethod
    async def fetch_serie_chapters(self, serie_id: str) -> SourceChaptersResult:
        pass

    @abstractmethod
    async def fetch_chapter_data(self, serie_id: str, chapter_id: str) -> List[SourcePage]:
        pass

    async def close(self):
        """Release network resources held by the adapter."""
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def enabled_languages(supported: List[SourceLanguage]) -> List[SourceLanguage]:
    """Languages of ``supported`` listed in settings.ENABLED_LANGUAGES."""
    from django.conf import settings

    enabled = set(getattr(settings, "ENABLED_LANGUAGES", ["En"]))
    return [language for language in supported if language.value in enabled]
