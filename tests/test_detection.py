import pytest

from ledgerhound import database
from ledgerhound.core.models import Account, Frequency
from ledgerhound.detection import (
    calculate_intervals,
    classify_intervals,
    detect_subscriptions,
    find_candidates,
    group_expenses,
    normalize_payee,
    predict_next_date,
)
from ledgerhound.importer import import_csv


def _expenses(payee, amount, dates, start_id=1):
    return [(start_id + i, payee, amount, d) for i, d in enumerate(dates)]


MONTHLY_DATES = [
    "2025-01-01", "2025-01-31", "2025-03-02",
    "2025-04-01", "2025-05-01", "2025-05-31",
]


@pytest.mark.parametrize("payee, expected", [
    ("Netflix.com 1234 Stockholm SE", "netflixcom stockholm se"),
    ("SPOTIFY", "spotify"),
    ("  Café   Øresund  ", "café øresund"),
    ("MobilePay 12345678", "mobilepay"),
    ("1234 5678", ""),
])
def test_normalize_payee(payee, expected):
    assert normalize_payee(payee) == expected


def test_group_expenses_buckets_by_pattern_and_amount():
    expenses = (
        _expenses("NETFLIX.COM 1234", -7900, ["2025-01-01", "2025-02-01"])
        + _expenses("Netflix.com 9876", -7900, ["2025-03-01"], start_id=10)
        + _expenses("Netflix.com", -9900, ["2025-04-01"], start_id=20)
        + _expenses("Bager", -3500, ["2025-01-05"], start_id=30)
    )
    buckets = group_expenses(expenses)

    assert set(buckets) == {("netflixcom", -7900)}
    assert [tx_id for tx_id, _ in buckets[("netflixcom", -7900)]] == [1, 2, 10]


def test_group_expenses_skips_excluded_patterns():
    expenses = _expenses("Spotify", -9900, ["2025-01-01", "2025-02-01"])
    assert group_expenses(expenses, excluded={("spotify", -9900)}) == {}
    assert group_expenses([]) == {}


def test_calculate_intervals_sorts_and_drops_gaps():
    assert calculate_intervals(["2025-03-01", "2025-01-01", "2025-01-31"]) == [30, 29]
    assert calculate_intervals(["2025-01-01", "2025-01-01", "2025-01-08"]) == [7]
    assert calculate_intervals(["2025-01-01", "not a date", "2025-02-01"]) == [31]
    assert calculate_intervals(["2025-01-01"]) == []


@pytest.mark.parametrize("intervals, frequency", [
    ([7, 7, 7], Frequency.WEEKLY),
    ([14, 14], Frequency.BIWEEKLY),
    ([30, 31, 28], Frequency.MONTHLY),
    ([365], Frequency.YEARLY),
])
def test_classify_intervals_picks_frequency(intervals, frequency):
    assert classify_intervals(intervals)[0] is frequency


@pytest.mark.parametrize("intervals", [[], [3, 100], [10], [20, 20], [200]])
def test_classify_intervals_outside_ranges(intervals):
    assert classify_intervals(intervals) is None


def test_classify_intervals_confidence():
    frequency, confidence = classify_intervals([30, 30, 30, 30, 30])
    assert frequency is Frequency.MONTHLY
    assert confidence == pytest.approx(1.0)

    # Mean 26.75 is monthly, but the spread pushes confidence near 0.19.
    frequency, confidence = classify_intervals([5, 40, 2, 60])
    assert frequency is Frequency.MONTHLY
    assert confidence == pytest.approx(0.189, abs=0.01)

    assert classify_intervals([1, 1, 88]) == (Frequency.MONTHLY, 0.0)


def test_predict_next_date_adds_fixed_period():
    assert predict_next_date("2025-01-31", Frequency.MONTHLY) == "2025-03-02"
    assert predict_next_date("2025-12-30", Frequency.WEEKLY) == "2026-01-06"
    assert predict_next_date("2024-03-01", Frequency.YEARLY) == "2025-03-01"
    assert predict_next_date("31-01-2025", Frequency.MONTHLY) is None
    assert predict_next_date(None, Frequency.MONTHLY) is None


def test_find_candidates_monthly_subscription():
    expenses = _expenses("Netflix.com 1234", -7900, MONTHLY_DATES)
    (cand,) = find_candidates(1, reversed(expenses))

    assert cand.payee_pattern == "netflixcom"
    assert cand.amount == -7900
    assert cand.frequency is Frequency.MONTHLY
    assert cand.last_charge_date == "2025-05-31"
    assert cand.next_charge_date == "2025-06-30"
    assert cand.transaction_ids == [1, 2, 3, 4, 5, 6]
    assert cand.confidence >= 0.6


def test_find_candidates_drops_irregular_buckets():
    expenses = _expenses("Bager", -3500, ["2025-01-01", "2025-01-06", "2025-02-15", "2025-02-17", "2025-04-18"])
    assert find_candidates(1, expenses) == []


def test_find_candidates_respects_min_confidence():
    expenses = _expenses("Fitness", -29900, ["2025-01-01", "2025-01-29", "2025-03-04"])
    assert find_candidates(1, expenses, min_confidence=0.99) == []
    assert len(find_candidates(1, expenses, min_confidence=0.5)) == 1


def test_find_candidates_sorted_by_confidence():
    steady = _expenses("Spotify", -9900, ["2025-01-01", "2025-01-08", "2025-01-15", "2025-01-22"])
    wobbly = _expenses("Fitness", -29900, ["2025-01-01", "2025-01-29", "2025-03-04"], start_id=10)
    candidates = find_candidates(1, wobbly + steady)

    assert [c.payee_pattern for c in candidates] == ["spotify", "fitness"]
    assert candidates[0].frequency is Frequency.WEEKLY
    assert candidates[0].confidence > candidates[1].confidence


def _import_netflix(conn, account_id):
    text = (
        "Dato;Tekst;Beløb\n"
        "01-01-2025;Netflix.com 1234;-79,00\n"
        "01-02-2025;Netflix.com 1234;-79,00\n"
        "04-03-2025;Netflix.com 1234;-79,00\n"
        "15-03-2025;Løn;25.000,00\n"
        "20-03-2025;Netto;-212,50\n"
    )
    import_csv(conn, text, account_id, "netflix.csv")


def test_detect_subscriptions_from_database(conn, account_id):
    _import_netflix(conn, account_id)
    (cand,) = detect_subscriptions(conn, account_id)

    assert cand.account_id == account_id
    assert cand.payee_pattern == "netflixcom"
    assert cand.amount == -7900
    assert cand.frequency is Frequency.MONTHLY
    assert cand.confidence == pytest.approx(1.0)
    assert cand.last_charge_date == "2025-03-04"
    assert cand.next_charge_date == "2025-04-03"
    assert len(cand.transaction_ids) == 3


def test_saved_subscription_is_not_detected_again(conn, account_id):
    _import_netflix(conn, account_id)
    (cand,) = detect_subscriptions(conn, account_id)
    sub_id = database.save_subscription(conn, cand)

    assert detect_subscriptions(conn, account_id) == []

    database.dismiss_subscription(conn, sub_id)
    assert len(detect_subscriptions(conn, account_id)) == 1


def test_detection_is_per_account(conn, account_id):
    _import_netflix(conn, account_id)
    other = database.create_account(conn, Account(name="Opsparing"))
    assert detect_subscriptions(conn, other) == []
