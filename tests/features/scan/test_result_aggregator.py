from a11y_portal.features.scan.schemas.audit import PageResult, SeverityBreakdown, Violation
from a11y_portal.features.scan.schemas.checkpoint import Checkpoint
from a11y_portal.features.scan.services.aggregation.result_aggregator import ResultAggregator


def _page(index, score, violations=0, engine_scores=None, **severity):
    return PageResult(
        url=f"https://example.org/{index}",
        score=score,
        violation_count=violations,
        severity=SeverityBreakdown(**severity),
        violations=[Violation(id=f"rule-{n}", engine="axe") for n in range(violations)],
        engine_scores=engine_scores or {"axe": score},
    )


def test_average_and_worst_page():
    aggregator = ResultAggregator()
    for index, score in enumerate([100, 80, 60]):
        aggregator.add(index, _page(index, score))

    checkpoint = aggregator.checkpoint
    assert aggregator.average_score == 80
    assert checkpoint.worst_page_score == 60
    assert checkpoint.worst_page_url == "https://example.org/2"
    assert checkpoint.last_scanned_page_index == 2
    assert checkpoint.pages_scanned == 3


def test_tie_keeps_earlier_worst_page():
    aggregator = ResultAggregator()
    for index, score in enumerate([80, 60, 60, 90]):
        aggregator.add(index, _page(index, score, violations=index))

    checkpoint = aggregator.checkpoint
    assert checkpoint.worst_page_url == "https://example.org/1"
    assert checkpoint.worst_page_violation_count == 1
    assert len(checkpoint.worst_page_violations) == 1


def test_failed_page_counts_as_scanned_only():
    aggregator = ResultAggregator()
    aggregator.add(0, _page(0, 90, violations=2, serious=2))
    checkpoint = aggregator.add(1, PageResult.failed("https://example.org/1", "timeout"))

    assert checkpoint.pages_scanned == 2
    assert checkpoint.pages_failed == 1
    assert checkpoint.pages_succeeded == 1
    assert checkpoint.total_violations_sum == 2
    assert checkpoint.last_scanned_page_index == 1
    assert aggregator.average_score == 90


def test_no_successful_page_means_no_average():
    aggregator = ResultAggregator()
    aggregator.add(0, PageResult.failed("https://example.org/0", "dns error"))

    assert aggregator.average_score is None
    assert aggregator.engine_averages == {}
    assert aggregator.checkpoint.worst_page_score is None


def test_severity_and_engine_scores_accumulate():
    aggregator = ResultAggregator()
    aggregator.add(0, _page(0, 70, violations=3, engine_scores={"axe": 80, "lighthouse": 60}, critical=1, minor=4))
    aggregator.add(1, _page(1, 90, violations=1, engine_scores={"axe": 90, "lighthouse": 90}, critical=2))

    checkpoint = aggregator.checkpoint
    assert checkpoint.severity_breakdown == SeverityBreakdown(critical=3, minor=4)
    assert checkpoint.total_violations_sum == 4
    assert aggregator.engine_averages == {"axe": 85, "lighthouse": 75}


def test_resumes_from_checkpoint_without_touching_it():
    start = Checkpoint(
        last_scanned_page_index=1,
        pages_scanned=2,
        pages_succeeded=2,
        score_sum=100,
        worst_page_url="https://example.org/1",
        worst_page_score=40,
    )
    aggregator = ResultAggregator(start)
    checkpoint = aggregator.add(2, _page(2, 40))

    assert checkpoint.worst_page_url == "https://example.org/1"
    assert checkpoint.pages_scanned == 3
    assert aggregator.average_score == 47
    assert start.pages_scanned == 2


def test_returned_checkpoint_is_a_copy():
    aggregator = ResultAggregator()
    checkpoint = aggregator.add(0, _page(0, 50))
    checkpoint.pages_scanned = 99

    assert aggregator.checkpoint.pages_scanned == 1
