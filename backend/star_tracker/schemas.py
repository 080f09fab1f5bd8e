from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# hard ceiling for a single page; settings.max_page_size may lower it further
MAX_PAGE_SIZE = 200


class Repository(BaseModel):
    name: str = ""
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    description: Optional[str] = None
    full_name: str = ""
    topics: List[str] = []
    url: Optional[str] = None
    stars: int = 0
    forks: int = 0
    language: Optional[str] = None
    size: Optional[int] = None
    open_issues: Optional[int] = None
    license: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator("topics", mode="before")
    @classmethod
    def _null_topics(cls, value):
        return value or []

    @field_validator("stars", "forks", mode="before")
    @classmethod
    def _null_counts(cls, value):
        return value or 0


class SearchRequest(BaseModel):
    term: str = ""
    language: str = "all"
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=MAX_PAGE_SIZE)


class AISearchRequest(BaseModel):
    utterance: str = ""
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=MAX_PAGE_SIZE)


class QueryCondition(BaseModel):
    field: str = Field(description="Database field name")
    operator: str = Field(description="Operator like =, >, <, LIKE etc")
    value: str = Field(description="Query value")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value):
        return value if isinstance(value, str) else str(value)


class AIQueryResult(BaseModel):
    success: bool = Field(
        description="Whether SQL query generation was successful. False if the user input is invalid"
    )
    sql: str = Field(default="", description="The generated SQL query")
    conditions: List[QueryCondition] = Field(
        default=[], description="Structured representation of query conditions"
    )


class CompiledQuery(BaseModel):
    sql: str
    params: dict = {}


class SearchResponse(BaseModel):
    results: List[Repository]
    offset: int
    limit: int
    source: Literal["default", "search", "ai"]
    error: Optional[str] = None


class CountResponse(BaseModel):
    total: int
