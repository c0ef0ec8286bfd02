from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

MAX_RESULTS_LIMIT = 10


class SearchRequest(BaseModel):
    """A search to run. Immutable once submitted."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    query: Annotated[
        str,
        Field(
            max_length=2048,
            description="Search query (blank queries are rejected with InvalidQuery)",
            examples=["typescript tutorial"],
        ),
    ]
    region: Annotated[
        str | None,
        Field(
            default=None,
            pattern=r"^([A-Za-z]{2}|auto)$",
            description="2-letter country code, or 'auto' / omitted to resolve from the caller's IP",
            examples=["JP", "US", "auto"],
        ),
    ]
    limit: Annotated[
        int,
        Field(
            default=MAX_RESULTS_LIMIT,
            ge=1,
            le=MAX_RESULTS_LIMIT,
            description="Maximum number of results to return",
        ),
    ]
    include_raw_html: Annotated[
        bool,
        Field(
            default=False,
            description="Include the fetched result page HTML in the response",
        ),
    ]


class SearchResult(BaseModel):
    """One organic result. Produced only by the extraction chain."""

    model_config = ConfigDict(frozen=True)

    rank: Annotated[int, Field(ge=1, description="1-based, dense position within the response")]
    title: Annotated[str, Field(min_length=1)]
    link: Annotated[str, Field(description="Absolute http(s) URL with redirect/tracking parameters removed")]
    display_url: Annotated[str, Field(default="", description="URL as displayed on the result page")]
    snippet: Annotated[str, Field(default="")]


class ResponseMeta(BaseModel):
    region_code: Annotated[str, Field(examples=["JP"])]
    region_name: Annotated[str, Field(examples=["Japan"])]
    target_url: Annotated[str, Field(description="Result page URL actually fetched")]
    latency_ms: Annotated[float, Field(description="Total wall-clock time including retries")]
    timestamp: Annotated[str, Field(description="ISO-8601 completion time (UTC)")]
    result_count: int
    attempts: Annotated[int, Field(default=1, description="Browser sessions used, including retries")]
    strategy: Annotated[
        str | None,
        Field(default=None, description="Extraction strategy that produced the results"),
    ]


class SearchResponse(BaseModel):
    success: bool
    meta: ResponseMeta
    results: list[SearchResult] = Field(default_factory=list)
    raw_html: Annotated[str | None, Field(default=None)]


class ErrorDetail(BaseModel):
    code: Annotated[str, Field(description="Error kind", examples=["Blocked", "InvalidQuery"])]
    message: str
    retryable: bool
    retry_after: Annotated[float | None, Field(default=None, description="Seconds until a retry may succeed")]


class ApiResponse(BaseModel):
    """Success envelope."""

    status_code: Annotated[int, Field(default=200, serialization_alias="statusCode")]
    result: Any


class ApiErrorResponse(BaseModel):
    """Error envelope. Never contains stack traces or session details."""

    status_code: Annotated[int, Field(serialization_alias="statusCode")]
    error: ErrorDetail


class CountryInfo(BaseModel):
    code: str
    name: str
