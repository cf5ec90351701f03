"""
Suwayomi vocabulary.

Suwayomi forwards whatever its extensions report, so languages and genres
are normalized leniently. Statuses come from a closed GraphQL enum and an
unmapped one raises VocabularyError.
"""

import re
from typing import List

from catalog.exceptions import VocabularyError
from catalog.sources.core import SourceLanguage, SourceSerieGenre, SourceSerieStatus, SourceSerieType

G = SourceSerieGenre

LANGUAGES = {
    "en": SourceLanguage.EN,
    "ja": SourceLanguage.JP,
    "ja-ro": SourceLanguage.JP_RO,
    "fr": SourceLanguage.FR,
    "ko": SourceLanguage.KO,
    "ko-ro": SourceLanguage.KO_RO,
    "zh-hk": SourceLanguage.ZH_HK,
    "zh": SourceLanguage.ZH,
    "zh-hans": SourceLanguage.ZH,
    "zh-hant": SourceLanguage.ZH_HK,
}

STATUS = {
    "UNKNOWN": SourceSerieStatus.UNKNOWN,
    "ONGOING": SourceSerieStatus.ONGOING,
    "COMPLETED": SourceSerieStatus.COMPLETED,
    "LICENSED": SourceSerieStatus.PUBLISHED,
    "PUBLISHING_FINISHED": SourceSerieStatus.COMPLETED,
    "CANCELLED": SourceSerieStatus.CANCELED,
    "ON_HIATUS": SourceSerieStatus.HIATUS,
}

GENRES = {
    "action": G.ACTION,
    "adventure": G.ADVENTURE,
    "comedy": G.COMEDY,
    "drama": G.DRAMA,
    "fantasy": G.FANTASY,
    "horror": G.HORROR,
    "mystery": G.MYSTERY,
    "psychological": G.PSYCHOLOGICAL,
    "romance": G.ROMANCE,
    "scifi": G.SCI_FI,
    "sliceoflife": G.SLICE_OF_LIFE,
    "sports": G.SPORTS,
    "supernatural": G.SUPERNATURAL,
    "thriller": G.THRILLER,
    "shounen": G.SHOUNEN,
    "shoujo": G.SHOUJO,
    "seinen": G.SEINEN,
    "josei": G.JOSEI,
    "harem": G.HAREM,
    "reverseharem": G.REVERSE_HAREM,
    "isekai": G.ISEKAI,
    "mecha": G.MECHA,
    "martialarts": G.MARTIAL_ARTS,
    "schoollife": G.SCHOOL_LIFE,
    "ecchi": G.ECCHI,
    "mature": G.MATURE,
    "adult": G.ADULT,
    "gore": G.GORE,
    "boyslove": G.BOYS_LOVE,
    "girlslove": G.GIRLS_LOVE,
    "yaoi": G.YAOI,
    "yuri": G.YURI,
    "historical": G.HISTORICAL,
    "military": G.MILITARY,
    "music": G.MUSIC,
    "medical": G.MEDICAL,
    "cooking": G.COOKING,
    "crime": G.CRIME,
    "doujinshi": G.DOUJINSHI,
    "oneshot": G.ONESHOT,
    "magic": G.MAGIC,
    "demons": G.DEMONS,
    "vampires": G.VAMPIRES,
    "zombies": G.ZOMBIES,
    "survival": G.SURVIVAL,
    "tragedy": G.TRAGEDY,
    "reincarnation": G.REINCARNATION,
    "timetravel": G.TIME_TRAVEL,
    "villainess": G.VILLAINESS,
    "videogames": G.VIDEO_GAMES,
    "fullcolor": G.FULL_COLOR,
    "webtoon": G.WEBCOMIC,
    "longstrip": G.LONG_STRIP,
}


def language(code: str) -> SourceLanguage:
    return LANGUAGES.get((code or "").lower(), SourceLanguage.EN)


def status(value: str) -> SourceSerieStatus:
    try:
        return STATUS[value]
    except KeyError:
        raise VocabularyError("status", value) from None


def genre(value: str) -> SourceSerieGenre:
    return GENRES.get(re.sub(r"[^a-z0-9]", "", value.lower()), SourceSerieGenre.UNKNOWN)


def infer_type(genres: List[str]) -> SourceSerieType:
    """Guess the publication type from free-form genre labels."""
    lowered = [value.lower() for value in genres]

    if any("manhwa" in value for value in lowered):
        return SourceSerieType.MANHWA
    if any("manhua" in value for value in lowered):
        return SourceSerieType.MANHUA
    if any("webtoon" in value or "long strip" in value for value in lowered):
        return SourceSerieType.WEBTOON
    if any("doujinshi" in value for value in lowered):
        return SourceSerieType.DOUJINSHI
    if any("novel" in value for value in lowered):
        return SourceSerieType.NOVEL
    return SourceSerieType.MANGA
