import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


SERIE_TYPE_CHOICES = [
    ("Manga", "Manga"),
    ("Manhwa", "Manhwa"),
    ("Manhua", "Manhua"),
    ("Webtoon", "Webtoon"),
    ("Lightnovel", "Lightnovel"),
    ("Novel", "Novel"),
    ("Doujinshi", "Doujinshi"),
    ("Comic", "Comic"),
    ("Oel", "Oel"),
    ("Unknown", "Unknown"),
]

LANGUAGE_CHOICES = [
    ("En", "En"),
    ("Jp", "Jp"),
    ("JpRo", "JpRo"),
    ("Fr", "Fr"),
    ("Ko", "Ko"),
    ("KoRo", "KoRo"),
    ("ZhHk", "ZhHk"),
    ("Zh", "Zh"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Source",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("external_id", models.CharField(help_text="Adapter id", max_length=100, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("url", models.URLField(blank=True)),
                ("icon", models.URLField(blank=True)),
                ("version", models.CharField(blank=True, max_length=20)),
                ("nsfw", models.BooleanField(default=False)),
                ("enabled", models.BooleanField(default=True)),
                ("languages", models.JSONField(blank=True, default=list)),
                ("search_filters", models.JSONField(blank=True, default=dict)),
                ("timeout", models.IntegerField(default=30, help_text="Request timeout (seconds)")),
                ("can_block_scraping", models.BooleanField(default=False)),
                ("minimum_update_interval", models.IntegerField(default=0)),
                ("rate_limit_max", models.IntegerField(default=1, help_text="Requests per window")),
                ("rate_limit_duration", models.IntegerField(default=1000, help_text="Window (ms)")),
                (
                    "last_fetch_fingerprint",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Leading external ids of the last 'latest' listing",
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "catalog_sources",
                "ordering": ["name"],
                "indexes": [models.Index(fields=["enabled"], name="catalog_sou_enabled_9b1c2e_idx")],
            },
        ),
        migrations.CreateModel(
            name="Genre",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=100, unique=True)),
            ],
            options={"db_table": "catalog_genres", "ordering": ["title"]},
        ),
        migrations.CreateModel(
            name="Author",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
            ],
            options={"db_table": "catalog_authors", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Artist",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
            ],
            options={"db_table": "catalog_artists", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Serie",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=500)),
                ("synopsis", models.TextField(blank=True, null=True)),
                ("cover", models.URLField(blank=True, max_length=1000, null=True)),
                ("custom_cover", models.URLField(blank=True, max_length=1000, null=True)),
                ("status", models.JSONField(blank=True, default=list)),
                ("type", models.CharField(choices=SERIE_TYPE_CHOICES, default="Unknown", max_length=20)),
                ("locked_fields", models.JSONField(blank=True, default=list)),
                ("soft_deleted_at", models.DateTimeField(blank=True, null=True)),
                ("pending_delete_job_id", models.CharField(blank=True, max_length=255, null=True)),
                ("refreshed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("genres", models.ManyToManyField(blank=True, related_name="series", to="catalog.genre")),
                ("authors", models.ManyToManyField(blank=True, related_name="series", to="catalog.author")),
                ("artists", models.ManyToManyField(blank=True, related_name="series", to="catalog.artist")),
            ],
            options={
                "db_table": "catalog_series",
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(fields=["soft_deleted_at"], name="catalog_ser_soft_de_4f0a1d_idx"),
                    models.Index(fields=["updated_at"], name="catalog_ser_updated_7c2b9e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SerieSource",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("external_id", models.CharField(max_length=255)),
                ("title", models.JSONField(blank=True, default=dict)),
                ("alternates_titles", models.JSONField(blank=True, default=dict)),
                ("synopsis", models.JSONField(blank=True, default=dict)),
                ("cover_source_url", models.URLField(blank=True, max_length=1000)),
                ("cover", models.URLField(blank=True, max_length=1000, null=True)),
                ("status", models.JSONField(blank=True, default=list)),
                ("type", models.CharField(choices=SERIE_TYPE_CHOICES, default="Unknown", max_length=20)),
                ("external_url", models.URLField(blank=True, max_length=1000, null=True)),
                ("is_primary", models.BooleanField(default=False)),
                ("consecutive_failures", models.IntegerField(default=0)),
                ("last_checked_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "serie",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sources",
                        to="catalog.serie",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="serie_sources",
                        to="catalog.source",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_serie_sources",
                "ordering": ["-is_primary", "created_at"],
                "indexes": [
                    models.Index(fields=["source", "last_checked_at"], name="catalog_ser_source__3d8e51_idx"),
                    models.Index(fields=["consecutive_failures"], name="catalog_ser_consecu_a61f07_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source", "external_id"), name="unique_serie_source_external_id"
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("is_primary", True)),
                        fields=("serie",),
                        name="unique_primary_serie_source",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScanlationGroup",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("external_id", models.CharField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("url", models.URLField(blank=True, max_length=1000, null=True)),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scanlation_groups",
                        to="catalog.source",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_scanlation_groups",
                "ordering": ["name"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source", "external_id"), name="unique_scanlation_group_external_id"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Chapter",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("external_id", models.CharField(max_length=255)),
                ("title", models.CharField(blank=True, max_length=500)),
                ("chapter_number", models.FloatField(default=0)),
                ("volume_number", models.IntegerField(blank=True, null=True)),
                ("volume_name", models.CharField(blank=True, max_length=255, null=True)),
                ("language", models.CharField(choices=LANGUAGE_CHOICES, default="En", max_length=10)),
                ("date_upload", models.DateTimeField(default=django.utils.timezone.now)),
                ("external_url", models.URLField(blank=True, max_length=1000, null=True)),
                ("enabled", models.BooleanField(default=True)),
                (
                    "page_fetch_status",
                    models.CharField(
                        choices=[
                            ("Pending", "Pending"),
                            ("InProgress", "In progress"),
                            ("Success", "Success"),
                            ("Partial", "Partial"),
                            ("Failed", "Failed"),
                            ("PermanentlyFailed", "Permanently failed"),
                            ("Incomplete", "Incomplete"),
                        ],
                        default="Pending",
                        max_length=20,
                    ),
                ),
                ("source_removed_at", models.DateTimeField(blank=True, null=True)),
                ("source_removal_acknowledged_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "serie",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chapters",
                        to="catalog.serie",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chapters",
                        to="catalog.source",
                    ),
                ),
                (
                    "groups",
                    models.ManyToManyField(
                        blank=True, related_name="chapters", to="catalog.scanlationgroup"
                    ),
                ),
            ],
            options={
                "db_table": "catalog_chapters",
                "ordering": ["-chapter_number"],
                "indexes": [
                    models.Index(fields=["serie", "chapter_number"], name="catalog_cha_serie_i_5e7d42_idx"),
                    models.Index(fields=["page_fetch_status"], name="catalog_cha_page_fe_0b9c13_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source", "external_id"), name="unique_chapter_external_id"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ChapterPage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("index", models.IntegerField()),
                ("type", models.CharField(default="image", max_length=10)),
                ("url", models.URLField(blank=True, max_length=1000, null=True)),
                ("source_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("permanently_failed", models.BooleanField(default=False)),
                (
                    "image_quality",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("healthy", "Healthy"),
                            ("degraded", "Degraded"),
                            ("corrupted", "Corrupted"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "chapter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pages",
                        to="catalog.chapter",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_chapter_pages",
                "ordering": ["chapter", "index"],
                "constraints": [
                    models.UniqueConstraint(fields=("chapter", "index"), name="unique_chapter_page_index"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JobFlow",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("pending_children", models.IntegerField(default=0)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={"db_table": "catalog_job_flows", "ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="Job",
            fields=[
                ("job_id", models.CharField(max_length=255, primary_key=True, serialize=False)),
                ("queue", models.CharField(max_length=50)),
                ("name", models.CharField(max_length=100)),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("waiting", "Waiting"),
                            ("delayed", "Delayed"),
                            ("waiting-children", "Waiting for children"),
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="waiting",
                        max_length=20,
                    ),
                ),
                ("attempts_made", models.IntegerField(default=0)),
                ("max_attempts", models.IntegerField(default=1)),
                ("backoff_type", models.CharField(default="exponential", max_length=20)),
                ("backoff_delay", models.IntegerField(default=0, help_text="Base backoff (ms)")),
                ("run_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("result", models.JSONField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                (
                    "flow",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="children",
                        to="catalog.jobflow",
                    ),
                ),
                (
                    "parent_of",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="parent",
                        to="catalog.jobflow",
                    ),
                ),
                ("flow_settled", models.BooleanField(default=False, help_text="Already counted towards its flow barrier")),
            ],
            options={
                "db_table": "catalog_jobs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["queue", "status"], name="catalog_job_queue_s_8a4f2c_idx"),
                    models.Index(fields=["queue", "finished_at"], name="catalog_job_queue_f_1e6d90_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueState",
            fields=[
                ("name", models.CharField(max_length=50, primary_key=True, serialize=False)),
                ("paused", models.BooleanField(default=False)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={"db_table": "catalog_queue_states", "ordering": ["name"]},
        ),
    ]
