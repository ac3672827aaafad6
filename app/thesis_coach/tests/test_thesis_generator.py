from unittest import mock

import pytest
import requests
from flask import Flask

from app.thesis_coach.services import thesis_generator
from app.thesis_coach.services.thesis_generator import (
    ThesisConfigurationError,
    ThesisGenerationError,
    build_thesis_prompt,
    generate_thesis_proposal,
    normalize_architecture_tree,
    normalize_proposal,
    resolve_selections,
)


RAW_PROPOSAL = {
    "title": " 基於鷹架理論之 AI 寫作教練 ",
    "englishTitle": "An AI Writing Coach Grounded in Scaffolding Theory",
    "abstract": "本研究探討...",
    "researchQuestions": ["RQ1", "", None, "RQ2"],
    "methodology": "準實驗設計",
    "architectureDescription": "三層式架構",
    "techStack": "Flask\nGemini API",
    "expectedContribution": "提升論證寫作能力",
    "architectureTree": {
        "name": "Writing Coach",
        "type": "weird",
        "children": [
            {
                "name": "AI Engine",
                "type": "module",
                "children": [
                    {"name": "Scaffolding Agent", "type": "component", "children": [{"name": "too deep"}]},
                    {"name": "Vector DB", "type": "database"},
                    {"name": ""},
                ],
            },
            "not a node",
            {"name": "Frontend"},
        ],
    },
}


@pytest.fixture(autouse=True)
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield


def test_resolve_selections_keeps_catalog_order_and_drops_unknown_ids():
    items = resolve_selections("tech", ["agent", "bogus", "llm"])
    assert [item["id"] for item in items] == ["llm", "agent"]


def test_prompt_lists_selected_labels():
    selections = {
        "tech": resolve_selections("tech", ["nlp"]),
        "theory": resolve_selections("theory", ["scaffolding", "srl"]),
        "target": resolve_selections("target", ["university"]),
        "platform": resolve_selections("platform", ["web"]),
    }
    prompt = build_thesis_prompt(selections)

    assert "核心 AI 技術: 自然語言處理 (NLP)" in prompt
    assert "鷹架理論 (Scaffolding), 自我調節學習 (SRL)" in prompt
    assert "Web 網頁應用" in prompt


def test_architecture_tree_is_clamped_to_three_levels():
    tree = normalize_architecture_tree(RAW_PROPOSAL["architectureTree"])

    assert tree["type"] == "system"
    assert [child["name"] for child in tree["children"]] == ["AI Engine", "Frontend"]
    engine = tree["children"][0]
    assert engine["children"] == [
        {"name": "Scaffolding Agent", "type": "component"},
        {"name": "Vector DB", "type": "database"},
    ]
    assert tree["children"][1] == {"name": "Frontend", "type": "module", "children": []}


def test_normalize_proposal_cleans_fields():
    proposal = normalize_proposal(RAW_PROPOSAL)

    assert proposal["title"] == "基於鷹架理論之 AI 寫作教練"
    assert proposal["research_questions"] == ["RQ1", "RQ2"]
    assert proposal["tech_stack"] == ["Flask", "Gemini API"]
    assert proposal["architecture_tree"]["name"] == "Writing Coach"


def test_normalize_proposal_supplies_root_when_tree_missing():
    proposal = normalize_proposal({"title": "T"})
    assert proposal["architecture_tree"] == {"name": "T", "type": "system", "children": []}
    assert proposal["research_questions"] == []


def test_generate_requires_every_category():
    with pytest.raises(ValueError) as excinfo:
        generate_thesis_proposal(["llm"], [], ["k12"], ["unknown"])
    assert "theory" in str(excinfo.value)
    assert "platform" in str(excinfo.value)


def test_generate_without_api_key_raises_configuration_error(monkeypatch):
    client = mock.Mock(is_configured=False)
    monkeypatch.setattr(thesis_generator, "get_gemini_client", lambda: client)

    with pytest.raises(ThesisConfigurationError):
        generate_thesis_proposal(["llm"], ["srl"], ["k12"], ["web"])
    client.generate_json.assert_not_called()


def test_generate_returns_normalized_proposal(monkeypatch):
    client = mock.Mock(is_configured=True)
    client.generate_json.return_value = RAW_PROPOSAL
    monkeypatch.setattr(thesis_generator, "get_gemini_client", lambda: client)

    proposal = generate_thesis_proposal(["llm"], ["srl"], ["k12"], ["web"])

    assert proposal["english_title"] == RAW_PROPOSAL["englishTitle"]
    kwargs = client.generate_json.call_args.kwargs
    assert kwargs["response_schema"] is thesis_generator.THESIS_SCHEMA
    assert kwargs["temperature"] == 0.7


def test_generate_wraps_http_errors(monkeypatch):
    client = mock.Mock(is_configured=True)
    client.generate_json.side_effect = requests.exceptions.ConnectionError("offline")
    monkeypatch.setattr(thesis_generator, "get_gemini_client", lambda: client)

    with pytest.raises(ThesisGenerationError):
        generate_thesis_proposal(["llm"], ["srl"], ["k12"], ["web"])


def test_generate_rejects_empty_result(monkeypatch):
    client = mock.Mock(is_configured=True)
    client.generate_json.return_value = None
    monkeypatch.setattr(thesis_generator, "get_gemini_client", lambda: client)

    with pytest.raises(ThesisGenerationError):
        generate_thesis_proposal(["llm"], ["srl"], ["k12"], ["web"])


@pytest.mark.parametrize("ids", [5, "llm", None, [{"id": "llm"}], {"llm": True}])
def test_resolve_selections_ignores_non_list_input(ids):
    assert resolve_selections("tech", ids) == []


def test_resolve_selections_skips_non_string_entries():
    items = resolve_selections("tech", [["llm"], 3, "agent"])
    assert [item["id"] for item in items] == ["agent"]


def test_generate_treats_malformed_selection_as_missing():
    with pytest.raises(ValueError) as excinfo:
        generate_thesis_proposal(5, ["srl"], ["k12"], ["web"])
    assert "tech" in str(excinfo.value)
