import itertools

from xlsvc.models.jobs import JobStatus, ProcessingHistoryRecord
from xlsvc.models.rules import DEFAULT_FILTER_RULES, FilterRule
from xlsvc.processor.matcher import (
    exists_matching_completed_job,
    find_matching_completed_job,
    matches,
)

F0 = FilterRule("F", "0")
G0 = FilterRule("G", "0")
H0 = FilterRule("H", "0")
H1 = FilterRule("H", "1")


def record(rules, status=JobStatus.COMPLETED, job_id="1"):
    return ProcessingHistoryRecord(job_id=job_id, status=status, filter_rules=list(rules))


def test_matches_ignores_order():
    assert matches([F0, G0], [G0, F0])


def test_matches_requires_same_length():
    # A shared rule is not enough when the lengths differ
    assert not matches([F0, G0], [F0])
    assert not matches([F0], [F0, G0])


def test_matches_compares_column_and_value():
    assert not matches([F0, H0], [F0, H1])
    assert not matches([FilterRule("f", "0")], [F0])


def test_matches_empty_sets():
    assert matches([], [])
    assert not matches([], [F0])


def test_matches_counts_duplicates():
    assert matches([F0, F0], [F0, F0])
    assert not matches([F0, F0], [F0, G0])
    assert not matches([F0, G0], [F0, F0])
    assert not matches([F0, F0, G0], [F0, G0, G0])


def test_matches_is_symmetric_and_permutation_invariant():
    sets = [
        [],
        [F0],
        [F0, G0],
        [G0, F0, H0],
        [F0, F0, G0],
        [F0, G0, G0],
        [H1, G0, F0],
        list(DEFAULT_FILTER_RULES),
    ]
    for a, b in itertools.product(sets, repeat=2):
        expected = matches(a, b)
        assert matches(b, a) == expected
        for permuted in itertools.permutations(a):
            assert matches(list(permuted), b) == expected


def test_exists_matching_completed_job_empty_history():
    assert not exists_matching_completed_job([F0, G0], [])
    assert not exists_matching_completed_job([], [])


def test_exists_matching_completed_job_reordered_rules():
    history = [record([G0, F0])]
    assert exists_matching_completed_job([F0, G0], history)


def test_exists_matching_completed_job_shorter_record():
    history = [record([F0])]
    assert not exists_matching_completed_job([F0, G0], history)


def test_exists_matching_completed_job_ignores_non_completed():
    history = [
        record([F0, G0], status=JobStatus.FAILED),
        record([F0, G0], status=JobStatus.PROCESSING),
        record([F0, G0], status=JobStatus.PENDING),
    ]
    assert not exists_matching_completed_job([F0, G0], history)


def test_find_matching_completed_job_returns_first_match():
    history = [
        record([F0], job_id="1"),
        record([G0, F0], status=JobStatus.FAILED, job_id="2"),
        record([G0, F0], job_id="3"),
        record([F0, G0], job_id="4"),
    ]
    match = find_matching_completed_job([F0, G0], history)
    assert match is not None
    assert match.job_id == "3"
    assert find_matching_completed_job([H1], history) is None
