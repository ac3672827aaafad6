"""
Thesis proposal generation service using Gemini AI.
Combines a learner's choice of AI technique, learning theory, audience and
platform into a structured master's thesis proposal.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import requests
from flask import current_app

from .gemini_client import get_gemini_client


AI_TECHS = [
    {'id': 'llm', 'label': '大型語言模型 (LLM/RAG)'},
    {'id': 'cv', 'label': '電腦視覺 (CV)'},
    {'id': 'nlp', 'label': '自然語言處理 (NLP)'},
    {'id': 'speech', 'label': '語音識別與合成'},
    {'id': 'recsys', 'label': '個人化推薦系統'},
    {'id': 'kg', 'label': '知識圖譜 (Knowledge Graph)'},
    {'id': 'affective', 'label': '情感運算 (Affective Computing)'},
    {'id': 'agent', 'label': '智慧代理人 (AI Agents)'},
]

EDU_THEORIES = [
    {'id': 'scaffolding', 'label': '鷹架理論 (Scaffolding)'},
    {'id': 'srl', 'label': '自我調節學習 (SRL)'},
    {'id': 'flipped', 'label': '翻轉教室 (Flipped Classroom)'},
    {'id': 'gamification', 'label': '遊戲化學習 (Gamification)'},
    {'id': 'ct', 'label': '運算思維 (Computational Thinking)'},
    {'id': 'ccl', 'label': '電腦輔助協作學習 (CSCL)'},
    {'id': 'bloom', 'label': "布魯姆分類法 (Bloom's Taxonomy)"},
]

TARGET_AUDIENCES = [
    {'id': 'k12', 'label': 'K-12 基礎教育'},
    {'id': 'university', 'label': '大專院校學生'},
    {'id': 'coding', 'label': '程式設計初學者'},
    {'id': 'language', 'label': '語言學習者'},
    {'id': 'special', 'label': '特殊教育需求'},
    {'id': 'vocational', 'label': '職業培訓/在職進修'},
    {'id': 'elderly', 'label': '高齡學習者'},
]

PLATFORMS = [
    {'id': 'web', 'label': 'Web 網頁應用'},
    {'id': 'mobile', 'label': 'Mobile App'},
    {'id': 'chatbot', 'label': '對話機器人 (Line/Discord)'},
    {'id': 'vr_ar', 'label': 'VR/AR 虛擬實境'},
    {'id': 'iot', 'label': 'IoT 物聯網裝置'},
    {'id': 'plugin', 'label': '瀏覽器/IDE 擴充套件'},
]

CATALOG = {
    'tech': AI_TECHS,
    'theory': EDU_THEORIES,
    'target': TARGET_AUDIENCES,
    'platform': PLATFORMS,
}

SYSTEM_INSTRUCTION = """
你是一位頂尖的資訊工程與教育科技領域的教授。
你的任務是協助碩士生構思論文題目與系統架構。
請根據學生選擇的技術、理論、對象與平台，產生一份具備學術價值的論文提案。
必須嚴格遵守 JSON 格式輸出。
所有的內容必須是「繁體中文」(Traditional Chinese)，除了專有名詞或英文標題。
系統架構部分，請仔細思考如何將 AI 技術與教育理論結合在軟體工程中。
"""

_COMPONENT_SCHEMA = {
    "type": "OBJECT",
    "properties": {"name": {"type": "STRING"}, "type": {"type": "STRING"}},
    "required": ["name", "type"],
}

_MODULE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "type": {"type": "STRING"},
        "children": {"type": "ARRAY", "items": _COMPONENT_SCHEMA},
    },
    "required": ["name", "type", "children"],
}

THESIS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING", "description": "論文中文題目"},
        "englishTitle": {"type": "STRING", "description": "論文英文題目"},
        "abstract": {"type": "STRING", "description": "約 150-200 字的摘要，使用繁體中文"},
        "researchQuestions": {"type": "ARRAY", "items": {"type": "STRING"}, "description": "3個主要研究問題"},
        "methodology": {"type": "STRING", "description": "研究方法描述 (例如：準實驗設計)"},
        "architectureDescription": {"type": "STRING", "description": "系統架構的文字詳細描述"},
        "techStack": {"type": "ARRAY", "items": {"type": "STRING"}, "description": "建議使用的具體技術棧"},
        "expectedContribution": {"type": "STRING", "description": "預期貢獻"},
        "architectureTree": {
            "type": "OBJECT",
            "description": "System Architecture Tree. Root -> Modules -> Components",
            "properties": {
                "name": {"type": "STRING"},
                "type": {"type": "STRING"},
                "children": {"type": "ARRAY", "items": _MODULE_SCHEMA},
            },
            "required": ["name", "type", "children"],
        },
    },
    "required": [
        "title", "englishTitle", "abstract", "researchQuestions", "methodology",
        "architectureDescription", "techStack", "expectedContribution", "architectureTree",
    ],
}

NODE_TYPES = ('system', 'module', 'component', 'database')
_LEVEL_TYPES = ('system', 'module', 'component')


class ThesisGenerationError(Exception):
    """Generation failed (quota, network, malformed output)."""


class ThesisConfigurationError(ThesisGenerationError):
    """Gemini is not configured; an administrator has to set the API key."""


def resolve_selections(category: str, ids: Optional[Sequence[str]]) -> List[Dict[str, str]]:
    """
    Map selected ids to catalog items, keeping catalog order and dropping unknown ids.
    Anything other than a list of strings selects nothing.
    """
    if not isinstance(ids, (list, tuple)):
        return []
    wanted = {i for i in ids if isinstance(i, str)}
    return [item for item in CATALOG[category] if item['id'] in wanted]


def build_thesis_prompt(selections: Dict[str, List[Dict[str, str]]]) -> str:
    def labels(category: str) -> str:
        return ', '.join(item['label'] for item in selections[category])

    return f"""
請根據以下組合產生一個碩士論文提案：

1. 核心 AI 技術: {labels('tech')}
2. 教育理論/策略: {labels('theory')}
3. 目標對象: {labels('target')}
4. 實作平台: {labels('platform')}

請發揮創意，結合最新的全球研究趨勢。
重點：確保輸出為繁體中文。
"architectureTree" 欄位必須是一個 3 層的巢狀結構：
1. 根節點 (System Name)
2. 第二層 (Subsystems/Modules, e.g., Frontend, Backend, AI Engine)
3. 第三層 (Components, e.g., React UI, Vector DB, Scaffolding Agent)
"""


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.splitlines()
    if not isinstance(value, list):
        return []
    return [item for item in (_text(entry) for entry in value) if item]


def normalize_architecture_tree(node: Any, depth: int = 0) -> Optional[Dict[str, Any]]:
    """Clamp an architecture tree to system -> modules -> components."""
    if not isinstance(node, dict):
        return None
    name = _text(node.get('name'))
    if not name:
        return None

    node_type = _text(node.get('type')).lower()
    if node_type not in NODE_TYPES:
        node_type = _LEVEL_TYPES[depth]

    normalized: Dict[str, Any] = {'name': name, 'type': node_type}
    if depth < len(_LEVEL_TYPES) - 1:
        children = node.get('children') if isinstance(node.get('children'), list) else []
        normalized['children'] = [
            child for child in (normalize_architecture_tree(c, depth + 1) for c in children) if child
        ]
    return normalized


def normalize_proposal(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Convert the camelCase model output into the proposal shape served by the API."""
    tree = normalize_architecture_tree(raw.get('architectureTree'))
    return {
        'title': _text(raw.get('title')),
        'english_title': _text(raw.get('englishTitle')),
        'abstract': _text(raw.get('abstract')),
        'research_questions': _string_list(raw.get('researchQuestions')),
        'methodology': _text(raw.get('methodology')),
        'architecture_description': _text(raw.get('architectureDescription')),
        'tech_stack': _string_list(raw.get('techStack')),
        'expected_contribution': _text(raw.get('expectedContribution')),
        'architecture_tree': tree or {'name': _text(raw.get('title')) or 'System', 'type': 'system', 'children': []},
    }


def generate_thesis_proposal(
    tech: Sequence[str],
    theory: Sequence[str],
    target: Sequence[str],
    platform: Sequence[str],
) -> Dict[str, Any]:
    """
    Generate a thesis proposal for the given catalog ids.

    Raises:
        ValueError: a category has no known selection
        ThesisConfigurationError: Gemini has no API key
        ThesisGenerationError: the call failed or returned nothing usable
    """
    selections = {
        'tech': resolve_selections('tech', tech),
        'theory': resolve_selections('theory', theory),
        'target': resolve_selections('target', target),
        'platform': resolve_selections('platform', platform),
    }
    missing = [category for category, items in selections.items() if not items]
    if missing:
        raise ValueError(f"Please select at least one option for: {', '.join(missing)}")

    client = get_gemini_client()
    if not client or not client.is_configured:
        current_app.logger.error("Gemini API not configured")
        raise ThesisConfigurationError(
            "系統環境變數錯誤：找不到 API Key。請設定環境變數 'GEMINI_API_KEY'。"
        )

    try:
        result = client.generate_json(
            build_thesis_prompt(selections),
            temperature=0.7,
            system_instruction=SYSTEM_INSTRUCTION,
            response_schema=THESIS_SCHEMA,
        )
    except requests.exceptions.RequestException as e:
        current_app.logger.error(f"Error generating thesis proposal: {e}")
        raise ThesisGenerationError("生成過程中發生錯誤，請檢查額度或稍後再試。") from e

    if not result or not isinstance(result, dict):
        current_app.logger.error("Thesis generation returned no usable JSON")
        raise ThesisGenerationError("生成過程中發生錯誤，請檢查額度或稍後再試。")

    proposal = normalize_proposal(result)
    current_app.logger.info(f"Generated thesis proposal: {proposal['title']}")
    return proposal
