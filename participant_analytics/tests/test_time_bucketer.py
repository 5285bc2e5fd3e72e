"""
Test suite for month/year bucket keys.
"""

from datetime import date

import pytest

from participant_analytics.services.time_bucketer import (
    is_month_key,
    is_year_key,
    month_key,
    month_label,
    month_start,
    shift_month,
    sorted_keys,
    year_key,
    year_of,
)


class TestKeys:

    def test_keys_are_zero_padded(self) -> None:
        assert month_key(date(2024, 3, 31)) == '2024-03'
        assert year_key(date(987, 1, 1)) == '0987'

    def test_year_of_month_key(self) -> None:
        assert year_of('2023-11') == '2023'

    def test_key_shapes(self) -> None:
        assert is_month_key('2024-12')
        assert not is_month_key('2024-13')
        assert not is_month_key('2024-1')
        assert is_year_key('2024')
        assert not is_year_key('24')

    def test_lexicographic_order_is_chronological(self) -> None:
        dates = [date(2024, 10, 1), date(2023, 12, 5), date(2024, 2, 1), date(2024, 1, 31)]
        keys = [month_key(d) for d in dates]
        assert sorted_keys(keys) == [month_key(d) for d in sorted(dates)]

    def test_sorted_keys_are_unique(self) -> None:
        assert sorted_keys(['2024-02', '2024-01', '2024-02']) == ['2024-01', '2024-02']


class TestMonthHelpers:

    def test_month_start_and_label(self) -> None:
        assert month_start('2024-04') == date(2024, 4, 1)
        assert month_label('2024-04') == 'Apr 2024'

    def test_month_start_rejects_bad_key(self) -> None:
        with pytest.raises(ValueError):
            month_start('April')

    @pytest.mark.parametrize('d,months,expected', [
        (date(2024, 1, 15), -1, date(2023, 12, 1)),
        (date(2024, 1, 15), 1, date(2024, 2, 1)),
        (date(2024, 11, 3), 14, date(2026, 1, 1)),
        (date(2024, 3, 1), -15, date(2022, 12, 1)),
    ])
    def test_shift_month(self, d: date, months: int, expected: date) -> None:
        assert shift_month(d, months) == expected
