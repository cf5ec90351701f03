"""
Keep Source rows in line with the adapters in the registry.

Run at deploy time (``manage.py sync_sources``) and by the sync_sources
task. Adapters listed in FORCE_DISABLE_SOURCE are stored disabled.
"""

import logging
from typing import Dict, Iterable, Optional

from django.conf import settings
from django.db import transaction

from catalog.models import Source
from catalog.sources import SourceRegistry, get_registry

logger = logging.getLogger(__name__)


def source_defaults(info, enabled: bool) -> Dict:
    return {
        "name": info.name,
        "url": info.url,
        "icon": info.icon,
        "version": info.version,
        "nsfw": info.nsfw,
        "enabled": enabled,
        "languages": [language.value for language in info.languages],
        "search_filters": info.search_filters.to_dict(),
        "timeout": info.timeout,
        "can_block_scraping": info.can_block_scraping,
        "minimum_update_interval": info.minimum_update_interval,
        "rate_limit_max": info.rate_limit_max,
        "rate_limit_duration": info.rate_limit_duration,
    }


def sync_sources(
    registry: Optional[SourceRegistry] = None,
    disabled_ids: Optional[Iterable[str]] = None,
) -> Dict:
    """
    Upsert one Source row per adapter.

    Returns:
        {"created": [...], "updated": [...], "disabled": [...]} adapter ids
    """
    registry = registry or get_registry()
    if disabled_ids is None:
        disabled_ids = getattr(settings, "FORCE_DISABLE_SOURCE", [])
    disabled = set(disabled_ids)

    summary = {"created": [], "updated": [], "disabled": []}
    with transaction.atomic():
        for adapter in registry:
            info = adapter.info()
            enabled = info.id not in disabled
            _, created = Source.objects.update_or_create(
                external_id=info.id,
                defaults=source_defaults(info, enabled),
            )
            summary["created" if created else "updated"].append(info.id)
            if not enabled:
                summary["disabled"].append(info.id)

    logger.info(
        f"Synced {len(registry)} sources: {len(summary['created'])} created, "
        f"{len(summary['updated'])} updated, {len(summary['disabled'])} disabled"
    )
    return summary
