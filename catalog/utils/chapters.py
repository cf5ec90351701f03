"""
Chapter numbering heuristics.

Catalog listings rarely expose a clean numeric chapter field, so numbers
are recovered from the chapter titles:

- extract_chapter_number: pick the most plausible number in one title
- calculate_missing_chapters: report gaps in a serie's numbering
- assign_seasoned_chapter_numbers: renumber "S2 - Episode 4" style titles
  so that seasons do not collide
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")
DECIMAL_PATTERN = re.compile(r"(\d+\.\d+)")
SEASON_PATTERN = re.compile(
    r"\b(?:Season\s*|S)(\d+)\b\D*?(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)

# Fraction treated as a bonus chapter and ignored by gap detection
SUPPLEMENTARY_FRACTION = 0.5

# Minimum share of chapter groups a sub-chapter fraction must appear in
EXPECTED_FRACTION_RATIO = 0.3


@dataclass
class ChapterNumbering:
    """Numbering assigned to one chapter title."""

    chapter_number: float
    volume_number: Optional[int] = None
    volume_name: Optional[str] = None


def extract_chapter_number(title: str) -> Optional[float]:
    """
    Extract a chapter number from a chapter title.

    Rules based on how many numbers the title contains:
    - 3 or more: the first decimal (X.Y) number, otherwise None
    - exactly 2: the last one ("S2 - Episode 104" -> 104)
    - exactly 1: that number
    - none: None

    Args:
        title: Chapter title as shown by the catalog

    Returns:
        The chapter number, or None when no rule applies
    """
    numbers = NUMBER_PATTERN.findall(title or "")
    count = len(numbers)

    if count >= 3:
        decimal = DECIMAL_PATTERN.search(title)
        if decimal:
            return float(decimal.group(1))
        # Titles with three integers and no decimal stay unnumbered
        return None

    if count == 2:
        return float(numbers[-1])

    if count == 1:
        return float(numbers[0])

    return None


def _round_fraction(number: float) -> float:
    fraction = number - math.floor(number)
    return math.floor(fraction * 10 + 0.5) / 10


def calculate_missing_chapters(chapters: Iterable[float]) -> List[float]:
    """
    Calculate missing chapter numbers from the numbers a catalog lists.

    Whole chapters missing between 1 and the highest chapter are reported.
    When most chapters are split into sub-chapters (x.1, x.2, ...), a
    chapter lacking one of the recurring fractions is reported as well,
    unless that chapter also exists as a whole number. Supplementary x.5
    chapters never count.

    Args:
        chapters: Chapter numbers, in any order, duplicates allowed

    Returns:
        Missing chapter numbers sorted ascending
    """
    by_whole: Dict[int, Set[float]] = {}
    for chapter in chapters:
        whole = math.floor(chapter)
        fraction = _round_fraction(chapter)
        if abs(fraction - SUPPLEMENTARY_FRACTION) < 1e-9:
            continue
        by_whole.setdefault(whole, set()).add(fraction)

    if not by_whole:
        return []

    highest = max(by_whole)
    missing: List[float] = [float(i) for i in range(1, highest + 1) if i not in by_whole]

    fraction_counts: Dict[float, int] = {}
    for fractions in by_whole.values():
        for fraction in fractions:
            fraction_counts[fraction] = fraction_counts.get(fraction, 0) + 1

    threshold = max(2, math.floor(len(by_whole) * EXPECTED_FRACTION_RATIO))
    expected = sorted(
        fraction
        for fraction, count in fraction_counts.items()
        if count >= threshold and fraction != 0
    )

    if expected:
        for whole, fractions in by_whole.items():
            if 0 in fractions:
                continue
            for fraction in expected:
                if fraction not in fractions:
                    missing.append(round(whole + fraction, 1))

    return sorted(missing)


def extract_season_and_episode(title: str) -> Optional[Tuple[int, float]]:
    """
    Detect a season marker followed by an episode number.

    Matches "S1 - Episode 96", "S3 Episode 10.5", "S1 10",
    "Season 2 Chapter 50" and similar.

    Returns:
        (season, episode) or None when the title has no season marker
    """
    if not title:
        return None

    match = SEASON_PATTERN.search(title)
    if not match:
        return None

    return int(match.group(1)), float(match.group(2))


def assign_seasoned_chapter_numbers(
    titles: List[str],
    total: Optional[int] = None,
) -> List[ChapterNumbering]:
    """
    Assign chapter numbers that stay unique across seasons.

    Each season continues where the previous ones ended: its offset is the
    sum of the highest episode of every earlier season, so S1E96 and S2E96
    become 96 and 192. Titles without a season marker use
    extract_chapter_number, and titles without any number get
    ``total - index``, which assumes the listing is newest first.

    Args:
        titles: Chapter titles in listing order
        total: Number used for the positional fallback, defaults to len(titles)

    Returns:
        One ChapterNumbering per title, in the same order
    """
    if total is None:
        total = len(titles)

    parsed = [extract_season_and_episode(title) for title in titles]

    max_episode: Dict[int, float] = {}
    for item in parsed:
        if item is None:
            continue
        season, episode = item
        max_episode[season] = max(max_episode.get(season, 0.0), episode)

    offsets: Dict[int, float] = {}
    running = 0.0
    for season in sorted(max_episode):
        offsets[season] = running
        running += max_episode[season]

    results: List[ChapterNumbering] = []
    for index, (title, item) in enumerate(zip(titles, parsed)):
        if item is not None:
            season, episode = item
            results.append(
                ChapterNumbering(
                    chapter_number=offsets[season] + episode,
                    volume_number=season,
                    volume_name=f"Season {season}",
                )
            )
            continue

        number = extract_chapter_number(title)
        if number is None:
            number = float(total - index)
        results.append(ChapterNumbering(chapter_number=number))

    return results
