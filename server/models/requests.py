from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(default=10, gt=0, le=100)
    chat_id: int | None = None


class HybridSearchRequest(BaseModel):
    query: str
    limit: int = Field(default=10, gt=0, le=100)


class AddMessageRequest(BaseModel):
    content: str = Field(min_length=1)
    is_user: bool = True


class VectorizationRunRequest(BaseModel):
    revectorize: bool = False


class CreateChatRequest(BaseModel):
    contact_name: str = Field(min_length=1)
    department: str | None = None
