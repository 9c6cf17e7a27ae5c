import pytest

from ridgeval.errors import BudgetError, ParseError
from ridgeval.types import Candidate, ReturnStatus, TemplateType, combine_statuses


def test_combine_keeps_every_message_with_position():
    status = combine_statuses(
        [ReturnStatus(), ReturnStatus.failure("disk full"), ReturnStatus(message="note")]
    )

    assert not status
    assert status.message == "Worker 2/3: disk full Worker 3/3: note"
    assert status.result_code == 1


def test_combine_all_successful():
    status = combine_statuses([ReturnStatus(), ReturnStatus()])

    assert status
    assert status.message is None


def test_candidates_order_by_similarity_then_identifier():
    ordered = sorted([Candidate("b", 1, 5.0), Candidate("a", 1, 5.0), Candidate("z", 1, 1.0)], reverse=True)

    assert [c.identifier for c in ordered] == ["b", "a", "z"]


def test_template_type_parse():
    assert TemplateType.parse(" Reference ") is TemplateType.REFERENCE
    assert TemplateType.PROBE.label == "probe"
    with pytest.raises(ValueError):
        TemplateType.parse("latent")


def test_error_messages():
    assert str(ParseError("bad", path="m", line_number=3)) == "m:3: bad"
    assert "1.1x" in str(BudgetError(800, 100, 1.1))
