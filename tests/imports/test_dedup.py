from ticketops.apps.imports.dedup import dedupe_service_records, job_key
from ticketops.apps.imports.policies import REASON_DUPLICATE_JOB_NUMBER, REASON_MISSING_JOB_NUMBER


def _entry(index, job_number, amount):
    row = {"job_number": job_number, "amount": amount}
    return index, row, {"job_number": job_number, "job_amount": amount}


def test_last_occurrence_wins():
    survivors, dropped = dedupe_service_records([_entry(0, "J-100", 200), _entry(1, "J-100", 350)])
    assert len(survivors) == 1
    assert survivors[0].index == 1
    assert survivors[0].record["job_amount"] == 350
    assert [(d.index, d.reason) for d in dropped] == [(0, REASON_DUPLICATE_JOB_NUMBER)]


def test_key_is_trimmed():
    survivors, dropped = dedupe_service_records([_entry(0, " J-7", 1), _entry(1, "J-7 ", 2)])
    assert [s.index for s in survivors] == [1]
    assert len(dropped) == 1


def test_survivors_ordered_by_winning_row():
    entries = [
        _entry(0, "A", 1),
        _entry(1, "B", 2),
        _entry(2, "A", 3),
        _entry(3, "C", 4),
    ]
    survivors, _ = dedupe_service_records(entries)
    assert [(s.index, s.record["job_number"]) for s in survivors] == [(1, "B"), (2, "A"), (3, "C")]


def test_rows_without_job_number_are_dropped():
    survivors, dropped = dedupe_service_records([_entry(0, "", 1), _entry(1, None, 2), _entry(2, "J", 3)])
    assert [s.index for s in survivors] == [2]
    assert [(d.index, d.reason) for d in dropped] == [
        (0, REASON_MISSING_JOB_NUMBER),
        (1, REASON_MISSING_JOB_NUMBER),
    ]


def test_every_entry_is_accounted_for():
    entries = [_entry(i, f"J-{i % 3}", i) for i in range(10)] + [_entry(10, "  ", 0)]
    survivors, dropped = dedupe_service_records(entries)
    assert len(survivors) + len(dropped) == len(entries)
    assert sorted([s.index for s in survivors] + [d.index for d in dropped]) == list(range(11))


def test_job_key():
    assert job_key({"job_number": 1001}) == "1001"
    assert job_key({"job_number": "   "}) is None
    assert job_key({}) is None
