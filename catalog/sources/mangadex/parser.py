"""
Pydantic schemas for the MangaDex REST API and their conversion into
canonical source records.
"""

from typing import Any, Dict, List, Optional

from django.utils.dateparse import parse_datetime
from pydantic import BaseModel

from catalog.sources.core import (
    MultiLanguage,
    SourceChapter,
    SourceLanguage,
    SourcePage,
    SourceScanlationGroup,
    SourceSerie,
    SourceSerieGenre,
    SourceSerieSummary,
    SourceSerieType,
)
from catalog.sources.mangadex import vocabulary

NO_IMAGE_URL = "https://i.imgur.com/6TrIues.jpeg"
COVERS_URL = "https://uploads.mangadex.org/covers"


class Relationship(BaseModel):
    id: str
    type: str
    related: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None


class TagAttributes(BaseModel):
    name: Dict[str, str]
    group: str


class Tag(BaseModel):
    id: str
    type: str
    attributes: TagAttributes


class MangaAttributes(BaseModel):
    title: Dict[str, str]
    altTitles: List[Dict[str, str]] = []
    description: Dict[str, str] = {}
    originalLanguage: str
    status: str
    state: Optional[str] = None
    contentRating: str
    tags: List[Tag] = []
    lastChapter: Optional[str] = None
    year: Optional[int] = None


class Manga(BaseModel):
    id: str
    type: str
    attributes: MangaAttributes
    relationships: List[Relationship] = []


class ChapterAttributes(BaseModel):
    volume: Optional[str] = None
    chapter: Optional[str] = None
    title: Optional[str] = None
    translatedLanguage: str
    externalUrl: Optional[str] = None
    publishAt: str
    pages: int


class Chapter(BaseModel):
    id: str
    type: str
    attributes: ChapterAttributes
    relationships: List[Relationship] = []


class MangaResponse(BaseModel):
    result: str
    data: Manga


class MangaListResponse(BaseModel):
    result: str
    limit: int
    offset: int
    total: int
    data: List[Manga]

    @property
    def has_next_page(self) -> bool:
        return self.offset + self.limit < self.total


class ChapterListResponse(BaseModel):
    result: str
    limit: int
    offset: int
    total: int
    data: List[Chapter]


class LatestChapter(BaseModel):
    id: str
    relationships: List[Relationship] = []

    @property
    def manga_id(self) -> Optional[str]:
        for relationship in self.relationships:
            if relationship.type == "manga":
                return relationship.id
        return None


class LatestChaptersResponse(BaseModel):
    result: str
    limit: int
    offset: int
    total: int
    data: List[LatestChapter]


class AtHomeChapter(BaseModel):
    hash: str
    data: List[str]
    dataSaver: List[str] = []


class AtHomeResponse(BaseModel):
    result: str
    baseUrl: str
    chapter: Optional[AtHomeChapter] = None


def to_multi_language(pairs) -> MultiLanguage:
    """Group (mangadex language code, value) pairs by canonical language."""
    result: MultiLanguage = {}
    for code, value in pairs:
        language = vocabulary.LANGUAGES.get_canonical(code)
        if language is not None and value:
            result.setdefault(language.value, []).append(value)
    return result


def serie_type(original_language: SourceLanguage, genres) -> SourceSerieType:
    """Infer the publication type from the original language and format tags."""
    if SourceSerieGenre.DOUJINSHI in genres:
        return SourceSerieType.DOUJINSHI
    if original_language in (SourceLanguage.JP, SourceLanguage.JP_RO):
        return SourceSerieType.MANGA
    if original_language in (SourceLanguage.KO, SourceLanguage.KO_RO):
        if SourceSerieGenre.LONG_STRIP in genres or SourceSerieGenre.WEBCOMIC in genres:
            return SourceSerieType.WEBTOON
        return SourceSerieType.MANHWA
    if original_language in (SourceLanguage.ZH, SourceLanguage.ZH_HK):
        return SourceSerieType.MANHUA
    return SourceSerieType.COMIC


def cover_url(manga: Manga) -> str:
    for relationship in manga.relationships:
        if relationship.type == "cover_art" and relationship.attributes:
            file_name = relationship.attributes.get("fileName")
            if isinstance(file_name, str) and file_name:
                return f"{COVERS_URL}/{manga.id}/{file_name}"
    return NO_IMAGE_URL


def to_summary(manga: Manga) -> SourceSerieSummary:
    return SourceSerieSummary(
        id=manga.id,
        title=to_multi_language(manga.attributes.title.items()),
        cover=cover_url(manga),
    )


def to_serie(manga: Manga, external_url: Optional[str] = None) -> SourceSerie:
    attributes = manga.attributes

    genres = []
    for tag in attributes.tags:
        # Format and theme tags ("Long Strip", "Web Comic") also drive type inference
        genre = vocabulary.GENRES.get_canonical(tag.id)
        if genre is not None and genre not in genres:
            genres.append(genre)

    status = []
    for value in (attributes.status, attributes.state):
        if value:
            canonical = vocabulary.STATUS.to_canonical(value)
            if canonical not in status:
                status.append(canonical)

    original_language = (
        vocabulary.LANGUAGES.get_canonical(attributes.originalLanguage) or SourceLanguage.JP
    )

    authors: List[str] = []
    artists: List[str] = []
    for relationship in manga.relationships:
        name = (relationship.attributes or {}).get("name")
        if not isinstance(name, str) or not name:
            continue
        if relationship.type == "author" and name not in authors:
            authors.append(name)
        elif relationship.type == "artist" and name not in artists:
            artists.append(name)

    return SourceSerie(
        id=manga.id,
        title=to_multi_language(attributes.title.items()),
        cover=cover_url(manga),
        alternates_titles=to_multi_language(
            pair for alternate in attributes.altTitles for pair in alternate.items()
        ),
        synopsis=to_multi_language(attributes.description.items()),
        status=status,
        type=serie_type(original_language, genres),
        genres=genres,
        authors=authors,
        artists=artists,
        external_url=external_url,
    )


def to_chapter(chapter: Chapter) -> Optional[SourceChapter]:
    """
    Convert a feed entry, or None for externally hosted chapters.

    Chapters hosted elsewhere (MangaPlus and friends) have an externalUrl
    and no pages; the at-home server cannot deliver them.
    """
    attributes = chapter.attributes
    if attributes.externalUrl is not None and attributes.pages == 0:
        return None

    language = vocabulary.LANGUAGES.to_canonical(attributes.translatedLanguage)
    chapter_number = float(attributes.chapter) if attributes.chapter else 0.0

    volume_number = None
    if attributes.volume:
        try:
            volume_number = int(attributes.volume)
        except ValueError:
            volume_number = None

    groups = []
    for relationship in chapter.relationships:
        if relationship.type != "scanlation_group":
            continue
        group_attributes = relationship.attributes or {}
        groups.append(
            SourceScanlationGroup(
                id=relationship.id,
                name=group_attributes.get("name") or "Unknown Group",
                url=group_attributes.get("website") or None,
            )
        )

    return SourceChapter(
        id=chapter.id,
        title={language.value: [attributes.title or f"Chapter {chapter_number:g}"]},
        chapter_number=chapter_number,
        language=language,
        date_upload=parse_datetime(attributes.publishAt),
        volume_number=volume_number,
        volume_name=attributes.volume,
        external_url=f"https://mangadex.org/chapter/{chapter.id}",
        groups=groups,
    )


def to_pages(response: AtHomeResponse) -> List[SourcePage]:
    if response.chapter is None:
        return []
    base_url = response.baseUrl.rstrip("/")
    return [
        SourcePage(index=index, url=f"{base_url}/data/{response.chapter.hash}/{file_name}")
        for index, file_name in enumerate(response.chapter.data, start=1)
    ]
