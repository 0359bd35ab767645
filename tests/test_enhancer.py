"""
Test suite for ``ContentEnhancer`` with a mocked structured-output chat model.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from folio.src.core.enhancer import ContentEnhancer, EnhancedExperience, build_experience_chunks
from folio.src.core.exceptions import UpstreamError
from folio.src.core.extractor import ContentExtractor

RECORD = {
    "company": "Acme Corp",
    "position": "Backend Engineer",
    "duration": "2021 - 2023",
    "location": "Remote",
    "description": "Owned the billing service.",
    "technologies": ["Python", "PostgreSQL"],
    "achievements": ["Reduced invoice errors by 40%"],
}


@pytest.fixture
def enhanced() -> EnhancedExperience:
    return EnhancedExperience(
        summary="Backend engineer on billing.",
        detailed_description="Designed and ran the billing service.",
        key_contributions=["rebuilt invoicing", "added reconciliation jobs"],
        impact="Fewer billing errors.",
        technical_context="Python services on PostgreSQL.",
        variations=["I worked on billing at Acme", "My billing work at Acme"],
    )


def _llm_returning(*results) -> MagicMock:
    structured = MagicMock()
    structured.ainvoke = AsyncMock(side_effect=list(results))
    llm = MagicMock()
    llm.with_structured_output.return_value = structured
    return llm


class TestBuildExperienceChunks:
    def test_main_technical_and_contribution_chunks(self, enhanced: EnhancedExperience) -> None:
        chunks = build_experience_chunks(RECORD, enhanced)

        assert [c.slug for c in chunks] == [
            "experience:acme-corp-backend-engineer",
            "experience:acme-corp-backend-engineer-technical",
            "experience:acme-corp-backend-engineer-contribution-1",
            "experience:acme-corp-backend-engineer-contribution-2",
        ]
        assert [c.metadata.content_type for c in chunks] == ["experience", "experience-technical", "experience-contribution", "experience-contribution"]
        assert chunks[0].content == "Backend engineer on billing. Designed and ran the billing service."
        assert "I worked on billing at Acme" in chunks[0].metadata.enrichment
        assert chunks[1].metadata.technologies == ["Python", "PostgreSQL"]


class TestContentEnhancer:
    async def test_enhance_returns_structured_output(self, enhanced: EnhancedExperience) -> None:
        llm = _llm_returning(enhanced)

        result = await ContentEnhancer(llm, delay_seconds=0).enhance(RECORD)

        assert result == enhanced
        llm.with_structured_output.assert_called_once_with(EnhancedExperience)
        messages = llm.with_structured_output.return_value.ainvoke.await_args.args[0]
        assert "Company: Acme Corp" in messages[-1].content
        assert "Technologies: Python, PostgreSQL" in messages[-1].content

    async def test_enhance_wraps_model_failure(self) -> None:
        enhancer = ContentEnhancer(_llm_returning(RuntimeError("model down")), delay_seconds=0)

        with pytest.raises(UpstreamError, match="model down"):
            await enhancer.enhance(RECORD)

    async def test_failed_entry_falls_back_to_basic_chunk(self, enhanced: EnhancedExperience) -> None:
        second = {**RECORD, "company": "Globex"}
        enhancer = ContentEnhancer(_llm_returning(RuntimeError("model down"), enhanced), delay_seconds=0)

        chunks = await enhancer.expand_experiences([RECORD, second])

        assert chunks[0].slug == "experience:acme-corp-backend-engineer"
        assert chunks[0].content.startswith("Position: Backend Engineer")
        assert [c.slug for c in chunks[1:]][:2] == ["experience:globex-backend-engineer", "experience:globex-backend-engineer-technical"]

    async def test_extract_all_enhanced_replaces_experience_chunks(self, extractor: ContentExtractor, enhanced: EnhancedExperience) -> None:
        enhancer = ContentEnhancer(_llm_returning(enhanced, enhanced), delay_seconds=0)

        chunks = await extractor.extract_all_enhanced(enhancer)
        slugs = [c.slug for c in chunks]

        assert "experience:northwind-logistics-software-engineer-ii-technical" in slugs
        assert "experience:data-commons-lab-data-engineering-intern-contribution-2" in slugs
        assert len(slugs) == len(set(slugs))
