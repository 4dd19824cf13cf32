import os
from unittest.mock import patch

import pytest

from ga4_cli.config import Config
from ga4_cli.models import ReportResult, ReportRow


@pytest.fixture
def clean_env():
    """Run with an empty environment; anything loaded from .env is dropped afterwards."""
    with patch.dict(os.environ, {}, clear=True):
        yield os.environ


@pytest.fixture
def config(tmp_path):
    return Config(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="s3cret",
        token_path=str(tmp_path / "token.json"),
    )


@pytest.fixture
def country_result():
    return ReportResult(
        dimension_headers=["country"],
        metric_headers=["users"],
        rows=[ReportRow(dimensions=["US"], metrics=["100"])],
        row_count=1,
    )


@pytest.fixture
def pages_result():
    return ReportResult(
        dimension_headers=["pagePath", "pageTitle"],
        metric_headers=["screenPageViews", "sessions"],
        rows=[
            ReportRow(dimensions=["/", "Home"], metrics=["1200", "800"]),
            ReportRow(dimensions=["/blog", "Blog, News & Notes"], metrics=["340", "210"]),
            ReportRow(dimensions=["/about", "About us"], metrics=["55", "40"]),
        ],
        row_count=17,
    )


@pytest.fixture
def empty_result():
    return ReportResult(
        dimension_headers=["country"],
        metric_headers=["users"],
        rows=[],
        row_count=0,
    )
