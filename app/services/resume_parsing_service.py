"""
Resume Parsing Service - turns an uploaded file into a stored resume version.

PIPELINE:
1. Extracted text  -> LLM parse      -> normalize_parsed_data
2. Parsed data     -> LLM analysis   -> normalize_analysis
3. Everything      -> ResumeVersionStore.create_version (becomes active)

If parsing fails nothing is stored and the upload is rejected.
If only the analysis fails the version is stored with an empty analysis.
"""

from datetime import datetime
from typing import Callable, Optional

from app.core.errors import InvalidFormat
from app.core.logging_config import get_logger
from app.services.llm_client import get_llm_client, LLMClient
from app.services.resume_content import normalize_analysis, normalize_parsed_data, normalize_social_links
from app.services.resume_version_store import ResumeVersionStore
from app.utils.timeutils import utcnow

logger = get_logger("services.resume_parsing")

# Below this many characters the file has no selectable text
MIN_TEXT_LENGTH = 50

PARSE_FAILED_MESSAGE = "Failed to parse resume. Please ensure the file contains selectable text."


class ResumeParsingService:
    """
    Complete resume upload workflow:
    1. Parse with the LLM
    2. Normalize into the canonical shape
    3. Analyze (best effort)
    4. Store as the new active version
    """

    def __init__(
        self,
        ai_client: LLMClient = None,
        store: ResumeVersionStore = None,
        clock: Callable[[], datetime] = None,
    ):
        self.ai_client = ai_client or get_llm_client()
        self.clock = clock or utcnow
        self.store = store or ResumeVersionStore(clock=self.clock)

    def parse(self, resume_text: str, account: Optional[dict] = None) -> dict:
        """
        Parse resume text into {"parsed_data", "social_links"}.
        Raises InvalidFormat when the text is unusable or the model output is not JSON.
        """
        if not resume_text or len(resume_text.strip()) < MIN_TEXT_LENGTH:
            raise InvalidFormat(PARSE_FAILED_MESSAGE)

        try:
            raw = self.ai_client.parse_resume(resume_text)
        except Exception as e:
            logger.warning("Resume parsing failed: %s", e)
            raise InvalidFormat(PARSE_FAILED_MESSAGE) from e

        links = raw.pop("social_links", None) or raw.pop("socialLinks", None)
        parsed_data = normalize_parsed_data(raw)

        # Fill gaps from the account the resume is uploaded to
        personal = parsed_data["personal_info"]
        for field in ("name", "email", "phone"):
            if not personal[field] and account and account.get(field):
                personal[field] = account[field]

        return {"parsed_data": parsed_data, "social_links": normalize_social_links(links)}

    def analyze(self, parsed_data: dict) -> dict:
        """Best-effort analysis; an empty (all zero) analysis on failure."""
        try:
            analysis = self.ai_client.analyze_resume(parsed_data)
        except Exception as e:
            logger.warning("Resume analysis failed, storing empty analysis: %s", e)
            return normalize_analysis({})
        analysis["analyzed_at"] = self.clock()
        return normalize_analysis(analysis)

    def parse_and_store(
        self,
        account: dict,
        resume_text: str,
        file_name: str,
        file_size: int = 0,
        file_type: str = "",
        file_url: str = "",
    ) -> dict:
        """
        Full pipeline for one upload.

        Args:
            account: Owner account document (needs _id, may carry name/email/phone)
            resume_text: Text extracted from the uploaded file
            file_name/file_size/file_type/file_url: File metadata stored with the version

        Returns:
            The stored resume version (active)
        """
        parsed = self.parse(resume_text, account)
        ai_analysis = self.analyze(parsed["parsed_data"])

        doc = self.store.create_version(
            account["_id"],
            {
                "file_name": file_name,
                "file_url": file_url,
                "file_size": file_size,
                "file_type": file_type,
                "parsed_data": parsed["parsed_data"],
                "social_links": parsed["social_links"],
                "ai_analysis": ai_analysis,
                "parsing_status": "completed",
                "parsing_error": None,
                "parsed_at": self.clock(),
                "notes": "",
            },
        )
        logger.info(
            "Stored parsed resume account_id=%s resume_id=%s version=%s",
            account["_id"], doc["_id"], doc["version"],
        )
        return doc


def get_resume_parser() -> ResumeParsingService:
    """Get resume parsing service instance."""
    return ResumeParsingService()
