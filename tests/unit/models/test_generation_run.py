import pytest

from prompt_rater.infra.db.models import GenerationRun, calculate_progress


@pytest.mark.parametrize(
    "processed,total,expected",
    [
        (0, 0, 0),
        (5, 0, 0),
        (3, None, 0),
        (0, 4, 0),
        (1, 3, 33),
        (2, 3, 67),
        (4, 4, 100),
        (9, 4, 100),
        (-2, 4, 0),
        (None, 4, 0),
    ],
)
def test_calculate_progress(processed, total, expected):
    assert calculate_progress(processed, total) == expected


def test_run_progress_and_activity():
    run = GenerationRun(status="RUNNING", total_instances=8, processed_count=2)
    assert run.progress == 25
    assert run.is_active

    run.status = "FAILED"
    assert not run.is_active
