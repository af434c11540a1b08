from pydantic import BaseModel, field_validator

MAX_PAGE_SIZE = 100

class Pagination(BaseModel):
    page: int = 1
    page_size: int = 20

    @field_validator("page", mode="before")
    @classmethod
    def clamp_page(cls, v):
        return max(int(v), 1)

    @field_validator("page_size", mode="before")
    @classmethod
    def clamp_page_size(cls, v):
        return min(max(int(v), 1), MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size

    def has_more(self, total_count: int) -> bool:
        return self.page * self.page_size < total_count
