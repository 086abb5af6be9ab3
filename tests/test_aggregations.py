"""Tests for sales/aggregations.py: summary, monthly and category reducers."""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sales.aggregations import (
    SalesSummary,
    category_chart,
    category_totals,
    month_label,
    monthly_chart,
    monthly_totals,
    summarize,
)
from sales.filters import FilterSelection, apply_filters
from sales.records import SalesRecord


def _rec(year="2020", month=1, item_type="BEER", retail=0.0, warehouse=0.0):
    return SalesRecord(year=year, month=month, item_type=item_type,
                       retail_sales=retail, warehouse_sales=warehouse)


BEER_AND_WINE = [
    _rec(item_type="BEER", retail=10, warehouse=5),
    _rec(item_type="WINE", retail=20, warehouse=0),
]

MIXED = [
    _rec(year="2020", month=1, item_type="BEER", retail=10.25, warehouse=3.5),
    _rec(year="2020", month=2, item_type="WINE", retail=7.1, warehouse=-1.2),
    _rec(year="2020", month=2, item_type="BEER", retail=0.3, warehouse=12.0),
    _rec(year="2021", month=11, item_type="LIQUOR", retail=99.99, warehouse=0.01),
    _rec(year="2021", month=1, item_type="BEER", retail=4.0, warehouse=4.0),
]


class TestSummarize:
    def test_beer_and_wine(self):
        s = summarize(BEER_AND_WINE)
        assert s.to_dict() == {
            "total_records": 2,
            "total_retail": 30.0,
            "total_warehouse": 5.0,
            "total_sales": 35.0,
        }

    def test_empty(self):
        assert summarize([]) == SalesSummary()
        assert summarize([]).total_sales == 0.0

    def test_total_is_retail_plus_warehouse(self):
        s = summarize([_rec(retail=1.25, warehouse=2.5), _rec(retail=-1, warehouse=0)])
        assert s.total_sales == pytest.approx(s.total_retail + s.total_warehouse)

    def test_formatted(self):
        s = SalesSummary(total_records=1234, total_retail=1234567.4, total_warehouse=0.6)
        assert s.formatted() == {
            "total_records": "1,234",
            "total_retail": "1,234,567",
            "total_warehouse": "1",
            "total_sales": "1,234,568",
        }


class TestMonthlyTotals:
    def test_single_bucket(self):
        buckets = monthly_totals(BEER_AND_WINE)
        assert len(buckets) == 1
        b = buckets[0]
        assert (b.key, b.label) == ("2020-01", "Jan 2020")
        assert (b.retail_total, b.warehouse_total, b.count) == (30.0, 5.0, 2)

    def test_sorted_chronologically(self):
        buckets = monthly_totals([
            _rec(year="2020", month=10),
            _rec(year="2019", month=12),
            _rec(year="2020", month=2),
        ])
        assert [b.key for b in buckets] == ["2019-12", "2020-02", "2020-10"]

    def test_month_zero_padded(self):
        assert monthly_totals([_rec(month=3)])[0].key == "2020-03"

    def test_counts_sum_to_input(self):
        records = [_rec(month=m % 12 + 1) for m in range(30)]
        assert sum(b.count for b in monthly_totals(records)) == 30

    def test_empty(self):
        assert monthly_totals([]) == []

    @pytest.mark.parametrize("selection", [
        FilterSelection(),
        FilterSelection(item_type="BEER"),
        FilterSelection(year="2021"),
        FilterSelection(item_type="WINE", year="2020"),
        FilterSelection(year="1999"),
    ])
    def test_buckets_sum_to_summary_total(self, selection):
        records = apply_filters(MIXED, selection)
        buckets = monthly_totals(records)
        total = sum(b.retail_total + b.warehouse_total for b in buckets)
        assert total == pytest.approx(summarize(records).total_sales)
        assert sum(b.count for b in buckets) == summarize(records).total_records

    def test_chart_arrays(self):
        chart = monthly_chart(monthly_totals(BEER_AND_WINE))
        assert chart == {"labels": ["Jan 2020"], "retail": [30.0], "warehouse": [5.0]}


class TestMonthLabel:
    @pytest.mark.parametrize("key,label", [
        ("2020-01", "Jan 2020"),
        ("2019-12", "Dec 2019"),
        ("2017-06", "Jun 2017"),
    ])
    def test_labels(self, key, label):
        assert month_label(key) == label


class TestCategoryTotals:
    def test_first_seen_order(self):
        totals = category_totals([
            _rec(item_type="WINE", retail=1),
            _rec(item_type="BEER", retail=2),
            _rec(item_type="WINE", warehouse=3),
        ])
        assert [(t.item_type, t.total) for t in totals] == [("WINE", 4.0), ("BEER", 2.0)]

    def test_beer_and_wine(self):
        totals = category_totals(BEER_AND_WINE)
        assert [t.to_dict() for t in totals] == [
            {"item_type": "BEER", "total": 15.0},
            {"item_type": "WINE", "total": 20.0},
        ]

    def test_sum_matches_summary(self):
        records = BEER_AND_WINE + [_rec(item_type="KEGS", warehouse=7.5)]
        totals = category_totals(records)
        assert sum(t.total for t in totals) == pytest.approx(summarize(records).total_sales)

    def test_chart_arrays(self):
        chart = category_chart(category_totals(BEER_AND_WINE))
        assert chart == {"labels": ["BEER", "WINE"], "values": [15.0, 20.0]}
