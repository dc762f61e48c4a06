"""
Pytest fixtures for the water quality dashboard tests.

Provides raw Socrata-shaped records, a fixed negative-offset timezone for
year-boundary checks, and a fake fetcher so nothing touches the network.
"""
import datetime
from unittest.mock import MagicMock

import pytest

from water_quality_dashboard import (
    ChartBuilder,
    DataProcessor,
    FieldNames,
    ModalController,
)


def make_record(oxygen, turbidity, date):
    """Build a raw record, omitting any field passed as the sentinel ``...``."""
    record = {"punto_de_monitoreo": "Rio Bogota - Puente"}
    for key, value in (
        ("oxigeno_disuelto", oxygen),
        ("turbiedad", turbidity),
        ("fecha_de_la_medicion", date),
    ):
        if value is not ...:
            record[key] = value
    return record


@pytest.fixture()
def fields():
    return FieldNames()


@pytest.fixture()
def utc_minus_5():
    return datetime.timezone(datetime.timedelta(hours=-5))


@pytest.fixture()
def scenario_records():
    """Two 2020 readings and one 2021 reading lacking oxygen."""
    return [
        make_record("6.0", "10", "2020-03-01"),
        make_record("8.0", "14", "2020-08-01"),
        make_record("", "5", "2021-01-01"),
    ]


@pytest.fixture()
def multi_year_records():
    return [
        make_record("5.5", "20.1", "2021-04-12T00:00:00.000"),
        make_record("7.25", "8", "2019-02-01T00:00:00.000"),
        make_record("6.1", "11.5", "2020-06-30T00:00:00.000"),
        make_record("6.75", "9", "2019-11-20T00:00:00.000"),
        make_record("not measured", "9", "2020-01-15T00:00:00.000"),
        make_record("6.0", "12", ...),
    ]


@pytest.fixture()
def series(multi_year_records, fields, utc_minus_5):
    result, _ = DataProcessor.process(multi_year_records, fields, utc_minus_5)
    return result


@pytest.fixture()
def charts(series):
    return ChartBuilder.build_charts(series)


@pytest.fixture()
def modal(charts):
    controller = ModalController()
    for chart in charts:
        controller.attach(chart)
    return controller


@pytest.fixture()
def fake_fetcher():
    """DataFetcher stand-in whose fetch() result is set per test."""
    fetcher = MagicMock()
    fetcher.fetch.return_value = []
    return fetcher
