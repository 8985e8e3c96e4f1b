from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Mongo ObjectIds travel through the service as their hex string.
PyObjectId = Annotated[str, BeforeValidator(str)]


def _assume_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Naive timestamps coming back from storage or the UI are UTC.
UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class Document(BaseModel):
    """Base for stored documents: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    WRITER = "Writer"
    MANAGER = "Manager"
    CEO = "CEO"


class ContentType(str, Enum):
    BLOG = "blog"
    TUTORIAL = "tutorial"
    CASE_STUDY = "case-study"
    WHITEPAPER = "whitepaper"
    SOCIAL_MEDIA = "social-media"
    EMAIL = "email"
    LANDING_PAGE = "landing-page"
    OTHER = "other"


class RateCard(Document):
    """Fixed per-content-type rates, in ContentType declaration order."""

    blog_rate: Optional[float] = None
    tutorial_rate: Optional[float] = None
    case_study_rate: Optional[float] = None
    whitepaper_rate: Optional[float] = None
    social_media_rate: Optional[float] = None
    email_rate: Optional[float] = None
    landing_page_rate: Optional[float] = None
    other_rate: Optional[float] = None

    def rate_for(self, content_type: ContentType) -> Optional[float]:
        field = content_type.value.replace("-", "_") + "_rate"
        return getattr(self, field)

    def configured_rates(self):
        for content_type in ContentType:
            rate = self.rate_for(content_type)
            if rate:
                yield content_type, rate


class CompensationStructure(RateCard):
    type: Literal["hourly", "fixed"]
    hourly_rate: Optional[float] = None


class TeamMember(Document):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    display_name: str
    email: str = ""
    role: Role = Role.WRITER
    compensation: Optional[CompensationStructure] = None


class Actor(BaseModel):
    """The acting user, as handed over by the identity layer."""

    display_name: str
    role: Role
