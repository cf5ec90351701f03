"""
JapScan native vocabulary (French labels).
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
        G.ADVENTURE: "Aventure",
        G.COMEDY: "Comédie",
        G.DRAMA: "Drame",
        G.ECCHI: "Ecchi",
        G.FANTASY: "Fantastique",
        G.GORE: "Gore",
        G.HAREM: "Harem",
        G.HISTORICAL: "Historique",
        G.HORROR: "Horreur",
        G.ISEKAI: "Isekai",
        G.JOSEI: "Josei",
        G.MARTIAL_ARTS: "Arts Martiaux",
        G.MATURE: "Mature",
        G.MECHA: "Mecha",
        G.MILITARY: "Militaire",
        G.MYSTERY: "Mystère",
        G.PSYCHOLOGICAL: "Psychologique",
        G.ROMANCE: "Romance",
        G.SCHOOL_LIFE: "Vie Scolaire",
        G.SCI_FI: "Sci-Fi",
        G.SEINEN: "Seinen",
        G.SHOUJO: "Shoujo",
        G.SHOUNEN: "Shounen",
        G.SLICE_OF_LIFE: "Tranche de vie",
        G.SPORTS: "Sports",
        G.SUPERNATURAL: "Surnaturel",
        G.THRILLER: "Thriller",
        G.TRAGEDY: "Tragédie",
    },
)

STATUS = Vocabulary(
    "status",
    {
        SourceSerieStatus.ONGOING: "En Cours",
        SourceSerieStatus.COMPLETED: "Terminé",
    },
)

TYPES = Vocabulary(
    "type",
    {
        SourceSerieType.MANGA: "manga",
        SourceSerieType.MANHWA: "manhwa",
        SourceSerieType.MANHUA: "manhua",
    },
)

SORT = Vocabulary(
    "sort",
    {
        SourceFilterSort.POPULARITY: "popular",
        SourceFilterSort.LATEST: "updated",
        SourceFilterSort.ALPHABETIC: "name",
    },
)

ORDER = Vocabulary(
    "order",
    {
        SourceFilterOrder.ASC: "asc",
        SourceFilterOrder.DESC: "desc",
    },
)
