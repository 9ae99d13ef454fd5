from pydantic import BaseModel, ConfigDict, Field


# --- Profile / User ---

class ProfileView(BaseModel):
    username: str
    bio: str | None = None
    image: str | None = None


class UserView(ProfileView):
    email: str


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    bio: str | None = None


class UserCreateEnvelope(BaseModel):
    user: UserCreate


class UserEnvelope(BaseModel):
    user: UserView


class ProfileEnvelope(BaseModel):
    profile: ProfileView


class UserPatch(BaseModel):
    """Fields of the current user that may change; unset fields are left alone."""

    username: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, min_length=3, max_length=255)
    bio: str | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    body: str


class CommentCreateEnvelope(BaseModel):
    articleComment: CommentCreate


class CommentView(BaseModel):
    id: int
    body: str
    createdAt: str | None
    updatedAt: str | None
    author: ProfileView | None


class CommentEnvelope(BaseModel):
    articleComment: CommentView


class CommentListEnvelope(BaseModel):
    articleComments: list[CommentView]


# --- Article ---

class ArticlePatch(BaseModel):
    """
    Partial update of an article's text fields.

    Build it with only the keys the client sent so that
    ``model_dump(exclude_unset=True)`` yields exactly those.
    """

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    description: str | None = None
    body: str | None = None
    tag_list: list[str] | None = None


class ArticleView(BaseModel):
    slug: str
    title: str
    image: str | None
    imgs: list[str]
    description: str | None
    body: str
    createdAt: str | None
    updatedAt: str | None
    tagList: list[str]
    upvoted: bool
    downvoted: bool
    upvotesCount: int
    downvotesCount: int
    author: ProfileView | None


class ArticleEnvelope(BaseModel):
    article: ArticleView


class ArticleListResponse(BaseModel):
    articles: list[ArticleView]
    articlesCount: int


class BodyImageResponse(BaseModel):
    file: str


class TagListResponse(BaseModel):
    tags: list[str]
