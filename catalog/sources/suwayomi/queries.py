"""
GraphQL documents sent to the Suwayomi server.
"""

SOURCES = """
query Sources {
  sources {
    nodes {
      id
      name
      lang
      iconUrl
      supportsLatest
      isNsfw
    }
  }
}
"""

FETCH_SOURCE_MANGA = """
mutation FetchSourceManga($input: FetchSourceMangaInput!) {
  fetchSourceManga(input: $input) {
    mangas {
      id
      title
      url
      realUrl
      thumbnailUrl
      author
      artist
      description
      status
      genre
    }
    hasNextPage
  }
}
"""

FETCH_MANGA = """
mutation FetchManga($id: Int!) {
  fetchManga(input: { id: $id }) {
    manga {
      id
      title
      url
      realUrl
      author
      artist
      description
      status
      genre
      thumbnailUrl
    }
  }
}
"""

FETCH_CHAPTERS = """
mutation FetchChapters($mangaId: Int!) {
  fetchChapters(input: { mangaId: $mangaId }) {
    chapters {
      id
      name
      chapterNumber
      scanlator
      uploadDate
      url
      realUrl
    }
  }
}
"""

FETCH_CHAPTER_PAGES = """
mutation FetchChapterPages($chapterId: Int!) {
  fetchChapterPages(input: { chapterId: $chapterId }) {
    pages
  }
}
"""

MANGA_BY_URL = """
query MangaByUrl($sourceId: LongString!, $url: String!) {
  mangas(filter: {
    sourceId: { equalTo: $sourceId }
    url: { equalTo: $url }
  }) {
    nodes {
      id
      title
      url
    }
  }
}
"""
