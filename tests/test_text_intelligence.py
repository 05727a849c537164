"""Tests for the text intelligence client's response handling."""

from decimal import Decimal

import pytest

from price_ingest.ai.prompts import CategoryOption
from price_ingest.ai.text_intelligence import TextIntelligenceClient
from tests.fakes import ScriptedLLM

CATEGORIES = [
    CategoryOption(name="iPhone", description="iPhone nuevos"),
    CategoryOption(name="Accesorios"),
    CategoryOption(name="Otros"),
]


def _client(**answers) -> TextIntelligenceClient:
    llm = ScriptedLLM(
        json_answers=answers.get("json"),
        text_answers=answers.get("text"),
    )
    return TextIntelligenceClient(llm=llm, embeddings=object())


@pytest.mark.asyncio
async def test_classification_inside_set_is_kept():
    client = _client(json={"classify_category": {"category": "iPhone"}})

    verdict = await client.classify_category("iPhone 13 128GB", Decimal("450"), CATEGORIES)

    assert verdict.category == "iPhone"
    assert verdict.coerced is False


@pytest.mark.asyncio
async def test_classification_outside_set_is_coerced_to_default():
    client = _client(json={"classify_category": {"category": "Tablets"}})

    verdict = await client.classify_category("iPad Air", Decimal("600"), CATEGORIES)

    assert verdict.category == "Otros"
    assert verdict.coerced is True


@pytest.mark.asyncio
async def test_classification_prompt_lists_allowed_names():
    client = _client(json={"classify_category": {"category": "Accesorios"}})

    await client.classify_category("Cargador 20W", Decimal("15"), CATEGORIES)

    prompt = client.llm.prompts["classify_category"][0]
    for option in CATEGORIES:
        assert option.name in prompt


@pytest.mark.asyncio
async def test_extraction_parses_prices_and_drops_empty_names():
    client = _client(json={
        "extract_items": {
            "is_list": True,
            "items": [
                {"name": "iPhone 13 128", "price": "1.500,50"},
                {"name": "AirPods Pro", "price": 189},
                {"name": "  ", "price": 10},
                "basura",
            ],
        }
    })

    result = await client.extract_items("lista")

    assert result.is_list is True
    assert [(i.name, i.price) for i in result.items] == [
        ("iPhone 13 128", Decimal("1500.50")),
        ("AirPods Pro", Decimal("189")),
    ]


@pytest.mark.asyncio
async def test_extraction_of_non_list():
    client = _client(json={"extract_items": {"is_list": False, "items": []}})

    result = await client.extract_items("hola, ¿cómo estás?")

    assert result.is_list is False
    assert result.items == []


@pytest.mark.asyncio
async def test_detection_and_identity_accept_string_booleans():
    client = _client(json={
        "detect_price_list": {"is_list": "true"},
        "confirm_identity": {"same": "false"},
    })

    assert (await client.is_price_list("iPhone 13 450")).is_list is True
    assert (await client.confirm_identity("iPhone 13", "iPhone 13 Pro")).same is False


@pytest.mark.asyncio
async def test_normalize_name_strips_quotes():
    client = _client(text={"normalize_name": '"iPhone 13 128GB"\n'})

    assert await client.normalize_name("iphone13 128") == "iPhone 13 128GB"


@pytest.mark.asyncio
async def test_normalize_name_empty_answer_keeps_raw_text():
    client = _client(text={"normalize_name": "   "})

    assert await client.normalize_name(" Cargador 20W ") == "Cargador 20W"
