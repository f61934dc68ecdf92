"""
Tests for the triage cascade.

The keyword heuristic always runs; the vision model only upgrades it and
any failure on the vision path falls back to the keyword result.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from src.config import TicketCategory, TicketPriority
from src.infrastructure.llm import MockLLMClient
from src.triage.application import IImageFetcher, TriageService
from src.triage.domain import (
    AnalysisSource,
    ImagePart,
    KeywordClassifier,
    MaintenanceAnalysis,
    VisionPromptBuilder,
    normalize_category,
    normalize_priority,
    parse_json_loose,
)
from src.triage.infrastructure import HttpImageFetcher, LLMClientAdapter

PHOTO = ImagePart(data=b"\xff\xd8\xff", mime_type="image/jpeg")


class FakeFetcher(IImageFetcher):
    """Returns the same photo for every URL."""

    def __init__(self, image=PHOTO):
        self.image = image
        self.urls = []

    async def fetch(self, url):
        self.urls.append(url)
        return self.image


class TestKeywordClassifier:

    def setup_method(self):
        self.classifier = KeywordClassifier()

    def test_plumbing_medium(self):
        result = self.classifier.classify("Water leaking under the kitchen sink")
        assert result.category == TicketCategory.PLUMBING
        assert result.priority == TicketPriority.MEDIUM
        assert result.confidence == 0.8
        assert result.hits == 3

    def test_emergency_phrase_wins(self):
        result = self.classifier.classify("No heat in the apartment since last night")
        assert result.category == TicketCategory.HVAC
        assert result.priority == TicketPriority.EMERGENCY

    def test_high_priority_phrase(self):
        result = self.classifier.classify("Dishwasher is not working")
        assert result.category == TicketCategory.APPLIANCE
        assert result.priority == TicketPriority.HIGH

    def test_cosmetic_is_low(self):
        result = self.classifier.classify("Scratch on the wall")
        assert result.category == TicketCategory.COSMETIC
        assert result.priority == TicketPriority.LOW

    def test_no_hits_is_unknown(self):
        result = self.classifier.classify("")
        assert result.category == TicketCategory.UNKNOWN
        assert result.priority == TicketPriority.MEDIUM
        assert result.confidence == 0.3
        assert result.hits == 0


class TestModelOutputNormalization:

    @pytest.mark.parametrize("value,expected", [
        ("plumbing", TicketCategory.PLUMBING),
        ("Pest_Control", TicketCategory.PEST_CONTROL),
        ("pest control", TicketCategory.PEST_CONTROL),
        ("A/C", TicketCategory.HVAC),
        ("Electric", TicketCategory.ELECTRICAL),
        ("misc", TicketCategory.OTHER),
    ])
    def test_categories(self, value, expected):
        assert normalize_category(value) == expected

    @pytest.mark.parametrize("value", [None, "", "roofing", 3])
    def test_unmappable_category(self, value):
        assert normalize_category(value) is None

    def test_priorities(self):
        assert normalize_priority("high") == TicketPriority.HIGH
        assert normalize_priority("Urgent") == TicketPriority.HIGH
        assert normalize_priority("whenever") is None

    def test_parse_fenced_json(self):
        text = '```json\n{"category": "HVAC", "priority": "LOW"}\n```'
        assert parse_json_loose(text) == {"category": "HVAC", "priority": "LOW"}

    def test_parse_json_with_chatter(self):
        text = 'Sure! Here you go: {"category":"PLUMBING"} Hope that helps.'
        assert parse_json_loose(text) == {"category": "PLUMBING"}

    @pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2]"])
    def test_parse_rejects_non_objects(self, text):
        assert parse_json_loose(text) is None


class TestVisionPrompt:
    def test_images_become_data_urls(self):
        messages = VisionPromptBuilder.build_messages([PHOTO, PHOTO])
        content = messages[0]["content"]

        assert messages[0]["role"] == "user"
        assert content[0]["type"] == "text"
        assert "short_reason" in content[0]["text"]
        assert len(content) == 3
        assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


class TestTriageService:

    async def test_text_only_uses_keywords(self):
        llm = MockLLMClient()
        service = TriageService(llm_client=LLMClientAdapter(client=llm), image_fetcher=FakeFetcher())

        analysis = await service.analyze("Water leaking under the kitchen sink")

        assert analysis.source == AnalysisSource.KEYWORD
        assert analysis.category == TicketCategory.PLUMBING
        assert analysis.reasoning == "Water leaking under the kitchen sink"
        assert llm.calls == []

    async def test_vision_upgrades_keyword_result(self):
        llm = MockLLMClient(category="PLUMBING", priority="HIGH")
        service = TriageService(llm_client=LLMClientAdapter(client=llm), image_fetcher=FakeFetcher())

        analysis = await service.analyze("Water leaking under the kitchen sink", ["https://img/1"])

        assert analysis.source == AnalysisSource.VISION
        assert analysis.category == TicketCategory.PLUMBING
        assert analysis.priority == TicketPriority.HIGH
        # agrees on category only
        assert analysis.confidence == 0.9
        assert analysis.reasoning == "Mock: visible water damage under the sink."
        assert analysis.model_used == "mock-model"
        assert analysis.images_analyzed == 1

    async def test_full_agreement_caps_confidence(self):
        llm = MockLLMClient(category="PLUMBING", priority="MEDIUM")
        service = TriageService(llm_client=LLMClientAdapter(client=llm), image_fetcher=FakeFetcher())

        analysis = await service.analyze("Water leaking under the kitchen sink", ["https://img/1"])

        assert analysis.confidence == 0.95

    async def test_only_first_images_are_sent(self):
        fetcher = FakeFetcher()
        service = TriageService(
            llm_client=LLMClientAdapter(client=MockLLMClient()),
            image_fetcher=fetcher,
            max_images=2
        )

        analysis = await service.analyze("", [f"https://img/{i}" for i in range(5)])

        assert fetcher.urls == ["https://img/0", "https://img/1"]
        assert analysis.images_analyzed == 2

    async def test_no_readable_images_falls_back(self):
        llm = MockLLMClient()
        service = TriageService(llm_client=LLMClientAdapter(client=llm), image_fetcher=FakeFetcher(image=None))

        analysis = await service.analyze("Outlet sparks", ["https://img/1"])

        assert analysis.source == AnalysisSource.KEYWORD
        assert analysis.category == TicketCategory.ELECTRICAL
        assert llm.calls == []

    async def test_model_failure_falls_back(self):
        llm = AsyncMock()
        llm.chat_completion.side_effect = RuntimeError("model unavailable")
        service = TriageService(llm_client=llm, image_fetcher=FakeFetcher())

        analysis = await service.analyze("Toilet is clogged", ["https://img/1"])

        assert analysis.source == AnalysisSource.KEYWORD
        assert analysis.category == TicketCategory.PLUMBING

    async def test_unparseable_answer_keeps_keyword_labels(self):
        llm = AsyncMock()
        llm.chat_completion.return_value = type("Result", (), {"content": "I cannot tell", "model": "m"})()
        service = TriageService(llm_client=llm, image_fetcher=FakeFetcher())

        analysis = await service.analyze("Toilet is clogged", ["https://img/1"])

        assert analysis.source == AnalysisSource.VISION
        assert analysis.category == TicketCategory.PLUMBING
        assert analysis.reasoning == "Toilet is clogged"

    def test_vision_disabled_without_llm(self):
        assert TriageService().vision_enabled is False

    def test_default_analysis(self):
        analysis = MaintenanceAnalysis.default("help")
        assert analysis.category == TicketCategory.UNKNOWN
        assert analysis.priority == TicketPriority.MEDIUM
        assert analysis.confidence == 0.0
        assert analysis.source == AnalysisSource.DEFAULT


class TestHttpImageFetcher:

    async def test_twilio_urls_carry_credentials(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, content=b"img", headers={"content-type": "image/png; charset=binary"})

        fetcher = HttpImageFetcher(
            twilio_auth=("ACtest", "secret"),
            transport=httpx.MockTransport(handler)
        )
        image = await fetcher.fetch("https://api.twilio.com/2010-04-01/Accounts/ACtest/Messages/MM1/Media/ME1")

        assert image == ImagePart(data=b"img", mime_type="image/png")
        assert seen["auth"].startswith("Basic ")

    async def test_other_hosts_are_anonymous(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, content=b"img", headers={"content-type": "image/jpeg"})

        fetcher = HttpImageFetcher(twilio_auth=("ACtest", "secret"), transport=httpx.MockTransport(handler))
        await fetcher.fetch("https://cdn.example.com/photo.jpg")

        assert seen["auth"] is None

    @pytest.mark.parametrize("status,content_type", [(404, "image/jpeg"), (200, "text/html")])
    async def test_non_images_are_ignored(self, status, content_type):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(status, content=b"x", headers={"content-type": content_type})
        )
        fetcher = HttpImageFetcher(transport=transport)

        assert await fetcher.fetch("https://cdn.example.com/photo.jpg") is None
