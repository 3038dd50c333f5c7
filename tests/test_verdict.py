import pytest

from browsebuddy.analysis.verdict import AnalysisVerdict, normalize_page_text
from browsebuddy.types import ContentType, RiskLevel, TokenBudget


@pytest.mark.parametrize(
    "response, harmful, content_type, risk",
    [
        ("Nothing harmful here? Actually yes, HIGH risk", True, ContentType.HARMFUL_CONTENT, RiskLevel.HIGH),
        ("Possible cyberbullying, low risk", False, ContentType.CYBERBULLYING, RiskLevel.LOW),
        ("Inappropriate language detected", True, ContentType.HARMFUL_CONTENT, RiskLevel.LOW),
        ("", False, ContentType.HARMFUL_CONTENT, RiskLevel.LOW),
    ],
)
def test_keyword_rules(response, harmful, content_type, risk):
    verdict = AnalysisVerdict.from_response(response)
    assert verdict.harmful_content is harmful
    assert verdict.type is content_type
    assert verdict.risk_level is risk
    assert verdict.details == response


def test_payload_uses_wire_keys():
    payload = AnalysisVerdict.from_response("cyberbullying, high").to_payload()
    assert payload == {
        "harmfulContent": False,
        "type": "cyberbullying",
        "riskLevel": "high",
        "details": "cyberbullying, high",
    }


def test_normalize_page_text_collapses_headline_joins():
    raw = "  Top story.  . \n\n Second   headline. "
    assert normalize_page_text(raw) == "Top story. Second headline."


def test_token_budget_threshold():
    assert TokenBudget(max_tokens=1000, tokens_used=850, tokens_left=150).is_critical(0.2)
    assert not TokenBudget(max_tokens=1000, tokens_used=800, tokens_left=200).is_critical(0.2)
