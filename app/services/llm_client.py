"""
LLM API Client

The provider exposes an OpenAI-compatible API (DeepSeek by default), so we
use the openai library. Model and base URL come from settings.

AI is used ONLY for:
- resume parsing (text -> structured JSON)
- resume analysis (structured JSON -> scores and feedback)

The output is normalized by resume_content before anything is stored.
"""
import json

from openai import OpenAI

from app.core.config import get_settings
from app.core.logging_config import get_logger

logger = get_logger("services.llm")


PARSE_PROMPT = """You are a resume parser. Extract information and return ONLY valid JSON.
Output format:
{
  "personal_info": {"name": "string", "email": "string", "phone": "string", "location": "string"},
  "summary": "string",
  "education": [{"degree": "string", "field": "string", "institution": "string",
                 "location": "string", "year": "string", "grade": "string"}],
  "experience": [{"position": "string", "company": "string", "location": "string",
                  "start_date": "Jan 2020", "end_date": "Present or Mon YYYY",
                  "current": false, "description": ["bullet"]}],
  "skills": {"technical": [], "frameworks": [], "tools": [], "languages": [], "soft": []},
  "projects": [{"name": "string", "description": "string", "technologies": [],
                "url": "string", "duration": "string"}],
  "certifications": [{"name": "string", "issuer": "string", "date": "string",
                      "credential_id": "string", "credential_url": "string"}],
  "social_links": {"linkedin": "", "github": "", "portfolio": "", "twitter": ""},
  "languages": [{"name": "string", "proficiency": "string"}],
  "achievements": ["string"]
}
Use "" or [] for anything not present. Preserve the resume's exact wording.
Return ONLY the JSON, no explanation."""

ANALYZE_PROMPT = """You are an expert resume reviewer. Analyze the resume data and return ONLY valid JSON.
Output format:
{
  "overall_score": 0-100,
  "ats_compatibility_score": 0-100,
  "readability_score": 0-100,
  "strengths": ["string"],
  "weaknesses": ["string"],
  "suggestions": ["string"],
  "key_highlights": ["string"],
  "missing_elements": ["string"]
}
overall_score: completeness, relevance, formatting and impact.
ats_compatibility_score: keyword usage, format and structure.
Be specific and actionable. Return ONLY the JSON, no explanation."""


class LLMClient:
    """
    Wrapper for the chat completions API with low-temperature, JSON-only prompts.
    """

    def __init__(self):
        settings = get_settings()
        self.client = OpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url
        )
        self.model = settings.llm_model

    def _call_api(self, system_prompt: str, user_content: str, max_tokens: int = 1000) -> str:
        """
        Internal method to call the API.
        Returns raw text response.
        """
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content}
            ],
            max_tokens=max_tokens,
            temperature=0.1  # Low temp for consistent structured output
        )
        return response.choices[0].message.content or ""

    @staticmethod
    def _extract_json(text: str) -> dict:
        """
        Extract JSON from API response.
        Handles cases where model wraps JSON in markdown code blocks.
        """
        text = text.strip()
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]

        data = json.loads(text.strip())
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object from the model")
        return data

    def parse_resume(self, resume_text: str) -> dict:
        """Parse resume text into structured (not yet normalized) data."""
        response = self._call_api(PARSE_PROMPT, resume_text, max_tokens=4000)
        return self._extract_json(response)

    def analyze_resume(self, parsed_data: dict) -> dict:
        """Score a parsed resume and list strengths, weaknesses and suggestions."""
        response = self._call_api(
            ANALYZE_PROMPT, json.dumps(parsed_data, default=str, indent=2), max_tokens=1500
        )
        return self._extract_json(response)

    def test_connection(self) -> bool:
        """Test if the LLM API is reachable"""
        try:
            response = self._call_api(
                "You are a test assistant.",
                "Reply with exactly: OK",
                max_tokens=10
            )
            return "OK" in response.upper()
        except Exception as e:
            logger.warning("LLM connection failed: %s", e)
            return False


# Singleton instance
_llm_client: LLMClient = None


def get_llm_client() -> LLMClient:
    """Get or create LLM client (singleton pattern)"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
