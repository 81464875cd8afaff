import math

from propsignal.core import metrics
from propsignal.core.models import LatestPriceRent, PropertyPair, SeriesPoint, Years


def test_compute_yield_rounds_to_one_decimal():
    """rent * 52 / price * 100, one decimal"""
    assert metrics.compute_yield(500, 520000) == 5.0
    assert metrics.compute_yield(420, 400000) == 5.5
    assert metrics.compute_yield(700, 1500000) == 2.4


def test_compute_yield_never_nan_or_infinite():
    for rent, price in [(500, 0), (500, -1), (None, 500000), (500, None), ("x", 1), (500, float("nan"))]:
        assert metrics.compute_yield(rent, price) is None


def test_round1_is_half_up():
    assert metrics.round1(5.45) == 5.5
    assert metrics.round1(2.25) == 2.3
    assert metrics.round1(-0.05) == -0.1


def test_latest_price_rent_uses_max_year():
    price_rows = [
        {"year": 2023, "property_type": "house", "median_price": 500000},
        {"year": 2024, "property_type": "house", "median_price": 520000},
        {"year": 2024, "property_type": "unit", "median_price": 380000},
    ]
    rent_rows = [{"year": 2024, "property_type": "house", "median_rent_weekly": 500}]
    pr = metrics.latest_price_rent(price_rows, rent_rows, ["house", "unit"])
    assert pr.year == 2024
    assert pr.price.house == 520000
    assert pr.price.unit == 380000
    assert pr.rent.house == 500
    assert pr.rent.unit is None

    y = metrics.latest_yield(pr)
    assert y.house == 5.0
    assert y.unit is None


def test_latest_price_rent_without_rows():
    pr = metrics.latest_price_rent([], [], ["house"])
    assert pr == LatestPriceRent()


def test_series_window_last_n_and_range():
    assert metrics.series_window(Years(lastN=3), 2024) == [2022, 2023, 2024]
    assert metrics.series_window(Years(lastN=2, to=2020), 2024) == [2019, 2020]
    assert metrics.series_window(Years.model_validate({"from": 2018, "to": 2020}), 2024) == [2018, 2019, 2020]


def test_yield_series_fills_missing_years_with_null():
    rows = [
        {"year": 2023, "property_type": "unit", "yield_pct": 5.2},
        {"year": 2024, "property_type": "unit", "yield_pct": 5.5},
    ]
    (series,) = metrics.yield_series(rows, ["unit"], [2020, 2021, 2022, 2023, 2024])
    assert series.propertyType == "unit"
    assert [p.year for p in series.points] == [2020, 2021, 2022, 2023, 2024]
    assert [p.value for p in series.points] == [None, None, None, 5.2, 5.5]
    assert series.change == 0.3


def test_year_over_year_is_percent_change():
    points = [SeriesPoint(year=2022, value=500000), SeriesPoint(year=2023, value=None), SeriesPoint(year=2024, value=520000)]
    assert metrics.year_over_year(points) == [None, None, None]
    points[1] = SeriesPoint(year=2023, value=500000)
    assert metrics.year_over_year(points) == [None, 0.0, 4.0]
    assert metrics.year_over_year([]) == []


def test_price_series_growth():
    rows = [
        {"year": 2024, "property_type": "house", "median_price": 605000},
        {"year": 2022, "property_type": "house", "median_price": 500000},
        {"year": 2024, "property_type": "unit", "median_price": 380000},
    ]
    house, unit = metrics.price_series(rows, ["house", "unit"], [2021, 2022, 2023, 2024])
    assert [p.value for p in house.points] == [None, 500000, None, 605000]
    assert [p.yoyPct for p in house.points] == [None, None, None, None]
    assert house.totalGrowthPct == 21.0
    # 1.21 over two years is 10% a year
    assert house.annualGrowthPct == 10.0
    assert unit.totalGrowthPct is None
    assert unit.annualGrowthPct is None


def test_series_window_is_bounded():
    assert len(metrics.series_window(Years(lastN=10 ** 15), 2024)) == metrics.MAX_SERIES_YEARS
    window = metrics.series_window(Years.model_validate({"from": 1900, "to": 2024}), 2024)
    assert window[0] == 2024 - metrics.MAX_SERIES_YEARS + 1
    assert window[-1] == 2024


def test_bedroom_snapshot_follows_preference_order():
    price_rows = [
        {"year": 2024, "bedroom": 3, "median_price": 480000},
        {"year": 2024, "bedroom": 4, "median_price": 600000},
        {"year": 2024, "bedroom": 2, "median_price": 400000},
    ]
    rent_rows = [
        {"year": 2024, "bedroom": 3, "median_rent_weekly": 460},
        {"year": 2023, "bedroom": 4, "median_rent_weekly": 550},
        {"year": 2024, "bedroom": 2, "median_rent_weekly": 400},
    ]
    snap = metrics.select_bedroom_snapshot(price_rows, rent_rows, [3, 4, 2])
    assert snap.bedroom == 3
    assert snap.impliedYield == 5.0

    # 4BR has no year with both figures, so 2BR is next
    snap = metrics.select_bedroom_snapshot(price_rows, rent_rows, [4, 2, 3])
    assert snap.bedroom == 2
    assert snap.year == 2024

    assert metrics.select_bedroom_snapshot(price_rows, [], [3, 4, 2]) is None


def test_nearby_compare_caps_rows_and_computes_deltas():
    rows = [
        {"suburb": "Sebastopol", "property_type": "house", "yield_pct": 5.6},
        {"suburb": "Sebastopol", "property_type": "unit", "yield_pct": 6.0},
        {"suburb": "Wendouree", "property_type": "house", "yield_pct": 5.2},
        {"suburb": "Alfredton", "property_type": "house", "yield_pct": 4.4},
    ]
    out = metrics.nearby_compare(
        rows, ["Sebastopol", "Wendouree", "Alfredton"], 2024, PropertyPair(house=5.0, unit=5.5)
    )
    assert out.year == 2024
    assert len(out.rows) == 2
    seb = out.rows[0]
    assert (seb.suburb, seb.house, seb.unit) == ("Sebastopol", 5.6, 6.0)
    assert seb.houseDelta == 0.6
    assert seb.unitDelta == 0.5
    assert out.rows[1].unit is None
    assert out.rows[1].unitDelta is None


def test_state_average_is_mean_of_lga_means():
    rows = [
        {"lga": "Ballarat", "property_type": "house", "yield_pct": 5.0},
        {"lga": "Melbourne", "property_type": "house", "yield_pct": 3.0},
        {"lga": "Melbourne", "property_type": "house", "yield_pct": 3.4},
        {"lga": "Melbourne", "property_type": "unit", "yield_pct": 4.5},
        {"lga": "", "property_type": "unit", "yield_pct": 9.9},
    ]
    avg = metrics.state_average(rows)
    assert avg.house == 4.1
    assert avg.unit == 4.5
    assert metrics.state_average([]) == PropertyPair()


def test_delta_pp_missing_side():
    assert metrics.delta_pp(None, 4.1) is None
    assert metrics.delta_pp(5.0, None) is None
    assert not math.isnan(metrics.delta_pp(5.0, 4.1))


def test_bedroom_snapshot_falls_through_missing_counts():
    price_rows = [
        {"year": 2023, "bedroom": 4, "median_price": 590000},
        {"year": 2024, "bedroom": 2, "median_price": 400000},
    ]
    rent_rows = [
        {"year": 2023, "bedroom": 4, "median_rent_weekly": 550},
        {"year": 2024, "bedroom": 2, "median_rent_weekly": 420},
    ]
    # 3BR requested but absent, so the house order continues with 4BR
    snap = metrics.select_bedroom_snapshot(price_rows, rent_rows, [3, 4, 2])
    assert (snap.bedroom, snap.year, snap.impliedYield) == (4, 2023, 4.8)

    snap = metrics.select_bedroom_snapshot(price_rows[1:], rent_rows[1:], [3, 4, 2])
    assert (snap.bedroom, snap.year, snap.impliedYield) == (2, 2024, 5.5)
