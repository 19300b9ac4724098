from pydantic import BaseModel
from typing import Any, List, Literal, Optional

Op = Literal["=", ">", ">=", "<", "<=", "in"]
Dir = Literal["asc", "desc"]

class FilterClause(BaseModel):
    field: str
    op: Op
    value: Any

class SortClause(BaseModel):
    field: str
    dir: Dir

class Projection(BaseModel):
    include: List[str] = []
    exclude: List[str] = []

class Page(BaseModel):
    page: int = 1
    limit: int = 100

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

class QueryDescriptor(BaseModel):
    filters: List[FilterClause] = []
    sort: List[SortClause] = []
    projection: Optional[Projection] = None
    page: Page = Page()
