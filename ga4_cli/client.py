"""GA4 Data API client.

Issues runReport calls through the GA4 Data API and normalizes the
column-oriented response into a ReportResult whose columns follow the
requested dimension order, then the requested metric order.
"""
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange as GA4DateRange,
    Dimension,
    Filter,
    FilterExpression,
    Metric,
    OrderBy,
    RunReportRequest,
    RunReportResponse,
)

from .auth import GA4Auth
from .errors import InvalidReportOption, MalformedResponse, NotInitialized, ReportFetchFailed
from .models import DateRange, ReportRequest, ReportResult, ReportRow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

TOP_PAGES_DIMENSIONS = ("pagePath", "pageTitle")
TOP_PAGES_METRICS = ("screenPageViews", "sessions")
TOP_EVENTS_DIMENSIONS = ("eventName",)
TOP_EVENTS_METRICS = ("eventCount",)
COUNTRY_DIMENSIONS = ("country",)
COUNTRY_METRICS = ("totalUsers", "sessions")

AVAILABLE_DIMENSIONS = [
    "country",
    "region",
    "city",
    "pagePath",
    "pageTitle",
    "eventName",
    "sessionSource",
    "sessionMedium",
    "sessionCampaignName",
    "deviceCategory",
    "operatingSystem",
    "browser",
    "date",
    "hour",
    "minute",
]

AVAILABLE_METRICS = [
    "totalUsers",
    "activeUsers",
    "newUsers",
    "sessions",
    "screenPageViews",
    "eventCount",
    "bounceRate",
    "averageSessionDuration",
    "engagementRate",
    "keyEvents",
    "totalRevenue",
]


# =============================================================================
# Filters and ordering
# =============================================================================

def parse_filter(filter_str: Optional[str]) -> Optional[FilterExpression]:
    """Parse filter string into FilterExpression.

    Supported formats:
    - dimension=value     (contains match, case insensitive)
    - dimension==value    (exact match)
    - dimension=~regex    (regex match)
    - dimension!=value    (not equals)
    """
    if not filter_str:
        return None

    def string_filter(field, value, match_type, case_sensitive=True):
        field = field.strip()
        if not field:
            raise InvalidReportOption(f"Filter has no field name: {filter_str!r}")
        return Filter(
            field_name=field,
            string_filter=Filter.StringFilter(
                match_type=match_type,
                value=value.strip(),
                case_sensitive=case_sensitive,
            ),
        )

    match = Filter.StringFilter.MatchType

    if "=~" in filter_str:
        dim, pattern = filter_str.split("=~", 1)
        return FilterExpression(filter=string_filter(dim, pattern, match.PARTIAL_REGEXP))

    if "==" in filter_str:
        dim, value = filter_str.split("==", 1)
        return FilterExpression(filter=string_filter(dim, value, match.EXACT))

    if "!=" in filter_str:
        dim, value = filter_str.split("!=", 1)
        return FilterExpression(
            not_expression=FilterExpression(filter=string_filter(dim, value, match.EXACT))
        )

    if "=" in filter_str:
        dim, value = filter_str.split("=", 1)
        return FilterExpression(
            filter=string_filter(dim, value, match.CONTAINS, case_sensitive=False)
        )

    raise InvalidReportOption(
        f"Unrecognized filter {filter_str!r}; use field=value, field==value, "
        "field=~regex or field!=value"
    )


def parse_order_by(order_str: Optional[str], dimensions: Sequence[str] = ()) -> Optional[OrderBy]:
    """Parse 'field:desc' or 'field:asc'. Dimension names order by dimension."""
    if not order_str:
        return None
    if ":" not in order_str:
        raise InvalidReportOption("Order-by must be formatted as 'field:desc' or 'field:asc'")

    field, direction = (part.strip() for part in order_str.split(":", 1))
    direction = direction.lower()
    if not field or direction not in ("asc", "desc"):
        raise InvalidReportOption("Order-by must be formatted as 'field:desc' or 'field:asc'")

    desc = direction == "desc"
    if field in dimensions:
        return OrderBy(dimension=OrderBy.DimensionOrderBy(dimension_name=field), desc=desc)
    return OrderBy(metric=OrderBy.MetricOrderBy(metric_name=field), desc=desc)


# =============================================================================
# Response decoding
# =============================================================================

def _field(obj, snake, camel):
    if snake in obj:
        return obj[snake]
    return obj.get(camel)


def _list_field(obj, snake, camel, what):
    value = _field(obj, snake, camel)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise MalformedResponse(f"Malformed GA4 response: {what} is not a list")
    return list(value)


def _header_names(headers, what) -> List[str]:
    names = []
    for header in headers:
        if not isinstance(header, Mapping):
            raise MalformedResponse(f"Malformed GA4 response: {what} entry is not an object")
        names.append(str(header.get("name") or ""))
    return names


def _column_positions(requested: Sequence[str], returned: List[str], what: str) -> List[Optional[int]]:
    # Align by name. Positions are used only when the provider sent no headers.
    if not returned:
        return list(range(len(requested)))
    positions = []
    for name in requested:
        if name in returned:
            positions.append(returned.index(name))
        else:
            logger.warning("GA4 response has no %s header for %r; leaving it blank", what, name)
            positions.append(None)
    return positions


def _cell_value(values, index: Optional[int]) -> str:
    if index is None or index >= len(values):
        return ""
    cell = values[index]
    if not isinstance(cell, Mapping):
        return ""
    value = cell.get("value")
    return "" if value is None else str(value)


def decode_report(payload, dimensions: Sequence[str], metrics: Sequence[str]) -> ReportResult:
    """Decode a runReport response into a ReportResult.

    Accepts proto field names (dimension_headers) or REST JSON names
    (dimensionHeaders). Missing arrays are empty and missing cells are "".
    Output columns follow the requested dimension and metric order.
    """
    if not isinstance(payload, Mapping):
        raise MalformedResponse("Malformed GA4 response: expected an object")

    dim_names = _header_names(
        _list_field(payload, "dimension_headers", "dimensionHeaders", "dimension headers"),
        "dimension header",
    )
    met_names = _header_names(
        _list_field(payload, "metric_headers", "metricHeaders", "metric headers"),
        "metric header",
    )
    if dim_names and set(dim_names) != set(dimensions):
        logger.debug("Dimension headers %s differ from request %s", dim_names, list(dimensions))
    if met_names and set(met_names) != set(metrics):
        logger.debug("Metric headers %s differ from request %s", met_names, list(metrics))

    dim_positions = _column_positions(dimensions, dim_names, "dimension")
    met_positions = _column_positions(metrics, met_names, "metric")

    rows = []
    for raw in _list_field(payload, "rows", "rows", "rows"):
        if not isinstance(raw, Mapping):
            raise MalformedResponse("Malformed GA4 response: row is not an object")
        dim_values = _list_field(raw, "dimension_values", "dimensionValues", "dimension values")
        met_values = _list_field(raw, "metric_values", "metricValues", "metric values")
        rows.append(
            ReportRow(
                dimensions=[_cell_value(dim_values, i) for i in dim_positions],
                metrics=[_cell_value(met_values, i) for i in met_positions],
            )
        )

    try:
        row_count = int(_field(payload, "row_count", "rowCount") or 0)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Malformed GA4 response: bad row count ({e})") from e

    return ReportResult(
        dimension_headers=list(dimensions),
        metric_headers=list(metrics),
        rows=rows,
        row_count=row_count,
    )


# =============================================================================
# Client
# =============================================================================

class GA4Client:
    def __init__(self, auth: GA4Auth):
        self.auth = auth
        self.client: Optional[BetaAnalyticsDataClient] = None

    def initialize(self) -> None:
        """Authenticate and build the Data API client."""
        credentials = self.auth.authenticate()
        self.client = BetaAnalyticsDataClient(credentials=credentials)

    def build_request(self, request: ReportRequest) -> RunReportRequest:
        request_kwargs = {
            "property": f"properties/{request.property_id}",
            "dimensions": [Dimension(name=d) for d in request.dimensions],
            "metrics": [Metric(name=m) for m in request.metrics],
            "date_ranges": [
                GA4DateRange(start_date=dr.start_date, end_date=dr.end_date)
                for dr in request.date_ranges
            ],
            "limit": request.limit or DEFAULT_LIMIT,
            "offset": request.offset or 0,
        }

        filter_expr = parse_filter(request.dimension_filter)
        if filter_expr is not None:
            request_kwargs["dimension_filter"] = filter_expr

        order_by = parse_order_by(request.order_by, request.dimensions)
        if order_by is not None:
            request_kwargs["order_bys"] = [order_by]

        return RunReportRequest(**request_kwargs)

    def run_report(self, request: ReportRequest) -> ReportResult:
        """Run one report and normalize the response."""
        if self.client is None:
            raise NotInitialized("Client not initialized. Call initialize() first.")

        api_request = self.build_request(request)
        logger.debug(
            "runReport %s dims=%s metrics=%s limit=%s offset=%s",
            api_request.property,
            list(request.dimensions),
            list(request.metrics),
            api_request.limit,
            api_request.offset,
        )
        try:
            response = self.client.run_report(request=api_request)
        except Exception as e:
            raise ReportFetchFailed(f"Failed to run report: {e}") from e

        if isinstance(response, RunReportResponse):
            payload = RunReportResponse.to_dict(response)
        else:
            payload = response
        return decode_report(payload, request.dimensions, request.metrics)

    def get_top_pages(self, property_id: str, date_range: DateRange, limit: int = 10) -> ReportResult:
        return self.run_report(ReportRequest(
            property_id=property_id,
            dimensions=TOP_PAGES_DIMENSIONS,
            metrics=TOP_PAGES_METRICS,
            date_ranges=(date_range,),
            limit=limit,
        ))

    def get_top_events(self, property_id: str, date_range: DateRange, limit: int = 10) -> ReportResult:
        return self.run_report(ReportRequest(
            property_id=property_id,
            dimensions=TOP_EVENTS_DIMENSIONS,
            metrics=TOP_EVENTS_METRICS,
            date_ranges=(date_range,),
            limit=limit,
        ))

    def get_users_by_country(self, property_id: str, date_range: DateRange, limit: int = 10) -> ReportResult:
        return self.run_report(ReportRequest(
            property_id=property_id,
            dimensions=COUNTRY_DIMENSIONS,
            metrics=COUNTRY_METRICS,
            date_ranges=(date_range,),
            limit=limit,
        ))

    def compare_reports(
        self,
        property_id: str,
        current_range: DateRange,
        previous_range: DateRange,
        dimensions: Sequence[str],
        metrics: Sequence[str],
        limit: Optional[int] = None,
    ) -> Dict[str, ReportResult]:
        """Fetch two periods concurrently. Fails if either fetch fails."""
        report_requests = [
            ReportRequest(
                property_id=property_id,
                dimensions=dimensions,
                metrics=metrics,
                date_ranges=(date_range,),
                limit=limit,
            )
            for date_range in (current_range, previous_range)
        ]
        with ThreadPoolExecutor(max_workers=2) as executor:
            current_future, previous_future = [executor.submit(self.run_report, r) for r in report_requests]
            current = current_future.result()
            previous = previous_future.result()
        return {"current": current, "previous": previous}

    @staticmethod
    def available_dimensions() -> List[str]:
        return list(AVAILABLE_DIMENSIONS)

    @staticmethod
    def available_metrics() -> List[str]:
        return list(AVAILABLE_METRICS)
