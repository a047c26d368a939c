"""Subject tagging, tag feedback and bills by subject."""
import json

import pytest

from legistrack.exceptions import NotFoundError
from legistrack.models.database import BillSubject, BillTag, get_session
from legistrack.services.tagging import TaggingService, clamp_score, fallback_tags, merge_feedback
from legistrack.summarizers.llm import LLMService

from tests.conftest import anthropic_outage, llm_response

SUBJECTS = [
    BillSubject(id="policy-energy", name="Energy", type="policy"),
    BillSubject(id="renewable-energy-sources", name="Renewable energy sources", type="legislative"),
    BillSubject(id="taxation", name="Taxation", type="legislative"),
]


@pytest.fixture(autouse=True)
def subjects(database):
    session = get_session()
    try:
        for subject in SUBJECTS:
            session.merge(subject)
        session.commit()
    finally:
        session.close()


@pytest.fixture
def offline():
    return TaggingService(llm=LLMService())


def _tag(bill_id, subject_id, score, feedback=None):
    session = get_session()
    try:
        tag = BillTag(bill_id=bill_id, subject_id=subject_id, confidence_score=score, user_feedback=feedback)
        session.add(tag)
        session.commit()
        return tag.id
    finally:
        session.close()


@pytest.mark.parametrize("value,expected", [(85, 85), ("72.6", 73), (150, 100), (-3, 0), ("high", None)])
def test_clamp_score(value, expected):
    assert clamp_score(value) == expected


def test_fallback_tags(make_bill):
    bill = make_bill(subjects=["Renewable energy sources", "Unlisted subject"])
    tags = fallback_tags(bill, [s.to_dict() for s in SUBJECTS])
    assert tags == [
        {"subject_id": "policy-energy", "name": "Energy", "confidence_score": 90},
        {"subject_id": "renewable-energy-sources", "name": "Renewable energy sources", "confidence_score": 80},
    ]


def test_tags_without_llm_come_from_bill_subjects(make_bill, offline):
    tags = offline.generate_tags_for_bill(make_bill())
    assert [t["subject_id"] for t in tags] == ["policy-energy", "renewable-energy-sources"]


def test_ai_tags_are_filtered_and_ranked(make_bill, anthropic_client, llm):
    anthropic_client.messages.create.return_value = llm_response(json.dumps([
        {"subject_id": "renewable-energy-sources", "name": "Renewable energy sources", "confidence_score": 70},
        {"subject_id": "policy-energy", "name": "Energy", "confidence_score": 140},
        {"subject_id": "taxation", "name": "Taxation", "confidence_score": 30},
        {"subject_id": "made-up", "name": "Made up", "confidence_score": 99},
    ]))

    tags = TaggingService(llm=llm).generate_tags_for_bill(make_bill())

    assert tags == [
        {"subject_id": "policy-energy", "name": "Energy", "confidence_score": 100},
        {"subject_id": "renewable-energy-sources", "name": "Renewable energy sources", "confidence_score": 70},
    ]
    prompt = anthropic_client.messages.create.call_args.kwargs["messages"][-1]["content"]
    assert '"id": "taxation"' in prompt


def test_ai_outage_falls_back_to_bill_subjects(make_bill, anthropic_client, llm):
    anthropic_client.messages.create.side_effect = anthropic_outage()
    tags = TaggingService(llm=llm).generate_tags_for_bill(make_bill())
    assert [t["confidence_score"] for t in tags] == [90, 80]


def test_no_subjects_means_no_tags(make_bill, offline):
    session = get_session()
    try:
        session.query(BillSubject).delete()
        session.commit()
    finally:
        session.close()
    assert offline.generate_tags_for_bill(make_bill()) == []


def test_save_tags_upserts_and_keeps_feedback(make_bill, offline):
    make_bill()
    feedback = {"accurate": True, "feedback_count": 3, "last_feedback": "2024-01-01T00:00:00"}
    _tag("118-hr-1234", "taxation", 60, feedback)

    offline.save_tags_for_bill("118-hr-1234", [
        {"subject_id": "taxation", "confidence_score": 75},
        {"subject_id": "policy-energy", "confidence_score": 90},
    ])

    tags = offline.get_tags_for_bill("118-hr-1234")
    assert [(t["subject_id"], t["confidence_score"]) for t in tags] == [("policy-energy", 90), ("taxation", 75)]
    assert tags[1]["user_feedback"] == feedback
    assert tags[0]["name"] == "Energy"
    assert offline.get_tags_for_bill("118-hr-1234", min_confidence=80)[0]["subject_id"] == "policy-energy"
    assert len(offline.get_tags_for_bill("118-hr-1234", min_confidence=80)) == 1


def test_tag_bill(make_bill, offline):
    make_bill()
    tags = offline.tag_bill("118-hr-1234")
    assert [t["source"] for t in tags] == ["ai", "ai"]

    with pytest.raises(NotFoundError):
        offline.tag_bill("118-hr-9999")


def test_merge_feedback_weighted_majority():
    first = merge_feedback(None, False)
    assert first["accurate"] is False
    assert first["feedback_count"] == 1

    tied = merge_feedback(first, True)
    assert tied["accurate"] is True
    assert tied["feedback_count"] == 2

    outvoted = merge_feedback({"accurate": True, "feedback_count": 1}, False)
    assert outvoted["accurate"] is True
    assert merge_feedback(outvoted, False)["accurate"] is True
    assert merge_feedback(first, False)["accurate"] is False


def test_first_negative_feedback_lowers_confidence(make_bill, offline):
    make_bill()
    tag_id = _tag("118-hr-1234", "taxation", 90)

    first = offline.submit_tag_feedback(tag_id, is_accurate=False)
    assert first["confidence_score"] == 70
    assert first["user_feedback"]["feedback_count"] == 1

    second = offline.submit_tag_feedback(tag_id, is_accurate=False)
    assert second["confidence_score"] == 70
    assert second["user_feedback"]["accurate"] is False


def test_feedback_for_unknown_tag(offline):
    with pytest.raises(NotFoundError):
        offline.submit_tag_feedback(404, is_accurate=True)


def test_process_all_bills_skips_tagged_and_paces(make_bill, offline, no_sleep):
    for number in range(1, 8):
        make_bill(f"118-hr-{number}")
    _tag("118-hr-1", "taxation", 90)

    result = offline.process_all_bills()

    assert result.count == 6
    assert result.errors == []
    assert no_sleep == [0.5, 0.5, 0.5, 0.5, 2.0]
    assert len(offline.get_tags_for_bill("118-hr-7")) == 2
    assert [t["subject_id"] for t in offline.get_tags_for_bill("118-hr-1")] == ["taxation"]


def test_process_all_bills_with_nothing_to_tag(offline):
    result = offline.process_all_bills()
    assert result.count == 0
    assert result.message == "No bills to tag"


def test_bills_by_subject(make_bill):
    make_bill("118-hr-1")
    make_bill("118-hr-2")
    make_bill("118-hr-3")
    _tag("118-hr-1", "taxation", 95)
    _tag("118-hr-2", "taxation", 72)
    _tag("118-hr-3", "taxation", 55)

    service = TaggingService(llm=LLMService())
    bills = service.get_bills_by_subject("taxation")

    assert sorted(b["id"] for b in bills) == ["118-hr-1", "118-hr-2"]
    assert {b["id"]: b["tag_confidence"] for b in bills}["118-hr-1"] == 95
    assert len(service.get_bills_by_subject("taxation", min_confidence=50, limit=1)) == 1
    assert service.get_bills_by_subject("policy-energy") == []
