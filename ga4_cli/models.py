from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class DateRange:
    """A GA4 date range. Dates are YYYY-MM-DD or GA4 relative dates."""
    start_date: str
    end_date: str


@dataclass(frozen=True)
class ReportRequest:
    property_id: str
    metrics: Tuple[str, ...]
    date_ranges: Tuple[DateRange, ...]
    dimensions: Tuple[str, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    dimension_filter: Optional[str] = None
    order_by: Optional[str] = None

    def __post_init__(self):
        # Accept lists from callers but store tuples so the request stays immutable.
        object.__setattr__(self, "metrics", tuple(self.metrics))
        object.__setattr__(self, "dimensions", tuple(self.dimensions or ()))
        object.__setattr__(self, "date_ranges", tuple(self.date_ranges))
        if not self.metrics:
            raise ValueError("ReportRequest requires at least one metric")


@dataclass
class ReportRow:
    dimensions: List[str] = field(default_factory=list)
    metrics: List[str] = field(default_factory=list)

    def cells(self) -> List[str]:
        return list(self.dimensions) + list(self.metrics)


@dataclass
class ReportResult:
    dimension_headers: List[str] = field(default_factory=list)
    metric_headers: List[str] = field(default_factory=list)
    rows: List[ReportRow] = field(default_factory=list)
    row_count: int = 0

    @property
    def headers(self) -> List[str]:
        return list(self.dimension_headers) + list(self.metric_headers)


@dataclass
class Token:
    """
    OAuth token record as persisted in token.json.
    expiry_date is milliseconds since the Unix epoch.
    """
    access_token: str
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "Token":
        expiry = data.get("expiry_date")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expiry_date=int(expiry) if expiry is not None else None,
            scope=data.get("scope"),
            token_type=data.get("token_type") or "Bearer",
        )
