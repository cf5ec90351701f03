"""
WeebCentral native vocabulary.
"""

from catalog.sources.core import (
    SourceFilterOrder,
    SourceFilterSort,
    SourceSerieGenre,
    SourceSerieStatus,
    SourceSerieType,
)
from catalog.sources.vocabulary import Vocabulary

G = SourceSerieGenre

GENRES = Vocabulary(
    "genre",
    {
        G.ACTION: "Action",
        G.ADULT: "Adult",
        G.ADVENTURE: "Adventure",
        G.COMEDY: "Comedy",
        G.DOUJINSHI: "Doujinshi",
        G.DRAMA: "Drama",
        G.ECCHI: "Ecchi",
        G.FANTASY: "Fantasy",
        G.GENDER_BENDER: "GenderBender",
        G.HAREM: "Harem",
        G.HENTAI: "Hentai",
        G.HISTORICAL: "Historical",
        G.HORROR: "Horror",
        G.ISEKAI: "Isekai",
        G.JOSEI: "Josei",
        G.LOLICON: "Lolicon",
        G.MARTIAL_ARTS: "MartialArts",
        G.MATURE: "Mature",
        G.MECHA: "Mecha",
        G.MYSTERY: "Mystery",
        G.PSYCHOLOGICAL: "Psychological",
        G.ROMANCE: "Romance",
        G.SCHOOL_LIFE: "SchoolLife",
        G.SCI_FI: "SciFi",
        G.SEINEN: "Seinen",
        G.SHOTACON: "Shotacon",
        G.SHOUJO: "Shoujo",
        G.SHOUJO_AI: "ShoujoAi",
        G.SHOUNEN: "Shounen",
        G.SHOUNEN_AI: "ShounenAi",
        G.SLICE_OF_LIFE: "SliceOfLife",
        G.SMUT: "Smut",
        G.SPORTS: "Sports",
        G.SUPERNATURAL: "Supernatural",
        G.TRAGEDY: "Tragedy",
        G.YAOI: "Yaoi",
        G.YURI: "Yuri",
        G.OTHER: "Other",
    },
)

STATUS = Vocabulary(
    "status",
    {
        SourceSerieStatus.ONGOING: "Ongoing",
        SourceSerieStatus.COMPLETED: "Complete",
        SourceSerieStatus.HIATUS: "Hiatus",
        SourceSerieStatus.CANCELED: "Canceled",
    },
)

TYPES = Vocabulary(
    "type",
    {
        SourceSerieType.MANGA: "Manga",
        SourceSerieType.MANHWA: "Manhwa",
        SourceSerieType.MANHUA: "Manhua",
        SourceSerieType.OEL: "OEL",
    },
)

SORT = Vocabulary(
    "sort",
    {
        SourceFilterSort.RELEVANCE: "Best Match",
        SourceFilterSort.POPULARITY: "Popularity",
        SourceFilterSort.LATEST: "Latest Updates",
        SourceFilterSort.ALPHABETIC: "Alphabet",
    },
)

ORDER = Vocabulary(
    "order",
    {
        SourceFilterOrder.ASC: "Ascending",
        SourceFilterOrder.DESC: "Descending",
    },
)
