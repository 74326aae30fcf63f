"""Tests for LLM service."""

import pytest
from unittest.mock import patch, MagicMock


class TestLLMServiceGenerate:
    """Test LLM text generation."""

    @pytest.fixture
    def llm_service(self):
        """Create LLMService with mocked client."""
        with patch("compliance_copilot.services.llm_service.settings") as mock_settings:
            mock_settings.gemini_api_key = "test-api-key"
            mock_settings.gemini_model = "gemini-pro"

            with patch("compliance_copilot.services.llm_service.genai") as mock_genai:
                mock_client = MagicMock()
                mock_genai.Client.return_value = mock_client

                from compliance_copilot.services.llm_service import LLMService
                service = LLMService()
                service._mock_client = mock_client
                return service

    @pytest.mark.asyncio
    async def test_generate_returns_text(self, llm_service):
        """generate returns generated text."""
        mock_response = MagicMock()
        mock_response.text = '{"findings": []}'
        llm_service._mock_client.models.generate_content.return_value = mock_response

        result = await llm_service.generate("Test prompt")

        assert result == '{"findings": []}'

    @pytest.mark.asyncio
    async def test_generate_handles_none_text(self, llm_service):
        """generate returns empty string if response text is None."""
        mock_response = MagicMock()
        mock_response.text = None
        llm_service._mock_client.models.generate_content.return_value = mock_response

        result = await llm_service.generate("Test prompt")

        assert result == ""

    @pytest.mark.asyncio
    async def test_json_output_sets_mime_type(self, llm_service):
        """json_output requests an application/json reply."""
        llm_service._mock_client.models.generate_content.return_value = MagicMock(text="{}")

        await llm_service.generate("Test prompt", json_output=True, system_prompt="Be strict")

        config = llm_service._mock_client.models.generate_content.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.system_instruction == "Be strict"

    @pytest.mark.asyncio
    async def test_generate_raises_on_error(self, llm_service):
        """generate raises exception on API error."""
        llm_service._mock_client.models.generate_content.side_effect = Exception("API Error")

        with pytest.raises(Exception) as exc:
            await llm_service.generate("Test prompt")

        assert "API Error" in str(exc.value)

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, llm_service):
        """Token counts from usage metadata are summed across calls."""
        usage = MagicMock(prompt_token_count=120, candidates_token_count=30)
        llm_service._mock_client.models.generate_content.return_value = MagicMock(
            text="{}", usage_metadata=usage
        )

        await llm_service.generate("one")
        await llm_service.generate("two")

        assert llm_service.usage.requests == 2
        assert llm_service.usage.input_tokens == 240
        assert llm_service.usage.output_tokens == 60
