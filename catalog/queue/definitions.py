"""
Queue definitions.

Each queue declares its payload schema (pydantic), retry policy, the
concurrency its workers run with and an optional Celery rate limit.
The Celery side (task names, routing) is derived from these definitions
in catalog.tasks and config.celery.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from pydantic import BaseModel, HttpUrl, ValidationError, field_validator, model_validator

from catalog.exceptions import PayloadValidationError


class QueueName(str, Enum):
    CHAPTER_DATA = "chapter-data"
    SERIE_INSERTER = "serie-inserter"
    INDEXER = "indexer"
    COVER_UPDATE = "cover-update"
    DELETE_SERIE = "delete-serie"
    EMAIL = "email"
    PAGE_RETRY = "page-retry"
    UPDATE_SCHEDULER = "update-scheduler"


# Payload schemas


class ChapterDataPayload(BaseModel):
    serie_id: UUID
    source_id: UUID
    chapter_id: UUID
    type: str = "UPDATE"

    @model_validator(mode="after")
    def check_type(self):
        if self.type != "UPDATE":
            raise ValueError(f"Unsupported chapter-data type: {self.type}")
        return self


class SerieInserterPayload(BaseModel):
    source_serie_id: str
    source_id: str


class IndexerType(str, Enum):
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class IndexerPayload(BaseModel):
    serie_id: UUID
    type: IndexerType


class CoverUpdateType(str, Enum):
    SOURCE = "SOURCE"
    CUSTOM = "CUSTOM"


class CoverUpdatePayload(BaseModel):
    type: CoverUpdateType
    serie_source_id: Optional[UUID] = None
    serie_id: Optional[UUID] = None
    image_url: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.type == CoverUpdateType.SOURCE and self.serie_source_id is None:
            raise ValueError("SOURCE cover update requires serie_source_id")
        if self.type == CoverUpdateType.CUSTOM and (self.serie_id is None or not self.image_url):
            raise ValueError("CUSTOM cover update requires serie_id and image_url")
        return self


class DeleteSerieType(str, Enum):
    SOFT_DELETE = "SOFT_DELETE"
    HARD_DELETE = "HARD_DELETE"


class DeleteSeriePayload(BaseModel):
    serie_id: UUID
    type: DeleteSerieType


class EmailType(str, Enum):
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_RESET_CONFIRMATION = "PASSWORD_RESET_CONFIRMATION"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    EMAIL_CHANGE = "EMAIL_CHANGE"
    EMAIL_CHANGE_WARNING = "EMAIL_CHANGE_WARNING"


class EmailPayload(BaseModel):
    type: EmailType
    to: str
    user_name: Optional[str] = None
    reset_url: Optional[HttpUrl] = None
    verification_url: Optional[HttpUrl] = None
    change_email_url: Optional[HttpUrl] = None
    new_email: Optional[str] = None

    @field_validator("to", "new_email")
    @classmethod
    def check_email(cls, value):
        if value is None:
            return value
        try:
            validate_email(value)
        except DjangoValidationError:
            raise ValueError(f"Invalid email address: {value}")
        return value


class PageRetryPayload(BaseModel):
    chapter_id: UUID


class UpdateSchedulerType(str, Enum):
    FETCH_LATEST = "FETCH_LATEST"
    REFRESH_ALL = "REFRESH_ALL"
    RETRY_FAILED_PAGES = "RETRY_FAILED_PAGES"


class UpdateSchedulerPayload(BaseModel):
    type: UpdateSchedulerType
    source_id: Optional[str] = None


@dataclass(frozen=True)
class QueueDefinition:
    """Static configuration of one queue."""

    name: str
    display_name: str
    payload_model: Type[BaseModel]
    attempts: int = 3
    backoff_type: str = "exponential"
    backoff_delay: int = 1000
    concurrency: int = 1
    rate_limit: Optional[str] = None

    @property
    def task_name(self) -> str:
        return f"catalog.tasks.run_{self.name.replace('-', '_')}"

    def validate(self, payload: Dict) -> Dict:
        """
        Validate a payload and return its JSON-safe form.

        Raises:
            PayloadValidationError: If the payload does not match the schema
        """
        try:
            model = self.payload_model.model_validate(payload)
        except ValidationError as e:
            raise PayloadValidationError(f"Invalid {self.name} payload: {e}") from e
        return model.model_dump(mode="json", exclude_none=True)

    def parse(self, payload: Dict) -> BaseModel:
        return self.payload_model.model_validate(payload)


QUEUES: Dict[str, QueueDefinition] = {
    definition.name: definition
    for definition in (
        QueueDefinition(
            name=QueueName.CHAPTER_DATA.value,
            display_name="Chapter data",
            payload_model=ChapterDataPayload,
            concurrency=2,
            rate_limit="24/m",
        ),
        QueueDefinition(
            name=QueueName.SERIE_INSERTER.value,
            display_name="Serie inserter",
            payload_model=SerieInserterPayload,
            concurrency=2,
            rate_limit="24/m",
        ),
        QueueDefinition(
            name=QueueName.INDEXER.value,
            display_name="Indexer",
            payload_model=IndexerPayload,
            concurrency=100,
        ),
        QueueDefinition(
            name=QueueName.COVER_UPDATE.value,
            display_name="Cover update",
            payload_model=CoverUpdatePayload,
        ),
        QueueDefinition(
            name=QueueName.DELETE_SERIE.value,
            display_name="Delete serie",
            payload_model=DeleteSeriePayload,
        ),
        QueueDefinition(
            name=QueueName.EMAIL.value,
            display_name="Email",
            payload_model=EmailPayload,
            backoff_delay=5000,
        ),
        QueueDefinition(
            name=QueueName.PAGE_RETRY.value,
            display_name="Page retry",
            payload_model=PageRetryPayload,
            backoff_delay=2000,
            concurrency=2,
            rate_limit="24/m",
        ),
        QueueDefinition(
            name=QueueName.UPDATE_SCHEDULER.value,
            display_name="Update scheduler",
            payload_model=UpdateSchedulerPayload,
            attempts=1,
            backoff_delay=0,
        ),
    )
}


def get_queue(name: str) -> QueueDefinition:
    """
    Look up a queue definition by name.

    Raises:
        KeyError: If the queue does not exist
    """
    if isinstance(name, QueueName):
        name = name.value
    try:
        return QUEUES[name]
    except KeyError:
        raise KeyError(f"Unknown queue: {name}") from None
