from typing import Optional

from pydantic import Field

from .user import ContentType, Document, PyObjectId, RateCard


class Client(Document):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    name: str
    compensation: Optional[RateCard] = None

    def rate_for(self, content_type: ContentType) -> Optional[float]:
        if self.compensation is None:
            return None
        return self.compensation.rate_for(content_type)
