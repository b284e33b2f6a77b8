"""
Resume Content - canonical shape of the resume payload and derived insights.

The AI parser has produced slightly different shapes over time
(e.g. experience "title" vs "position", description as a string vs a list
of bullets). Everything entering the resumes collection goes through
normalize_parsed_data() so the stored document always has the canonical
shape below, while unknown keys are kept as-is.

Canonical parsed_data:
{
    "personal_info": {"name", "email", "phone", "location"},
    "summary": str, "objective": str,
    "education": [{"institution", "degree", "field", "year", "location", "grade", "description"}],
    "experience": [{"company", "position", "location", "start_date", "end_date",
                    "current": bool, "description": [str], "technologies": [str]}],
    "projects": [{"name", "description", "technologies": [str], "url", "duration", "highlights": [str]}],
    "certifications": [{"name", "issuer", "date", "expiry_date", "credential_id", "credential_url"}],
    "skills": {"technical", "soft", "languages", "tools", "frameworks"},   # each [str]
    "languages": [{"name", "proficiency"}],
    "achievements": [str]
}
Dates are kept as strings ("Jan 2020", "2020-01", "Present").
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.utils.timeutils import utcnow


SKILL_CATEGORIES = ["technical", "soft", "languages", "tools", "frameworks"]
SOCIAL_PLATFORMS = ["linkedin", "github", "portfolio", "twitter", "medium", "stackoverflow"]
ANALYSIS_SCORES = ["overall_score", "readability_score", "ats_compatibility_score", "completeness_score"]
ANALYSIS_LISTS = [
    "strengths", "weaknesses", "suggestions", "keyword_matches",
    "key_highlights", "missing_elements",
]

# (path, weight, is_list) - used by completeness_score()
COMPLETENESS_SECTIONS = [
    (("parsed_data", "summary"), 10, False),
    (("parsed_data", "education"), 15, True),
    (("parsed_data", "experience"), 20, True),
    (("parsed_data", "skills", "technical"), 15, True),
    (("parsed_data", "projects"), 10, True),
    (("parsed_data", "certifications"), 10, True),
    (("social_links", "linkedin"), 10, False),
    (("social_links", "github"), 10, False),
]

PRESENT_WORDS = {"present", "current", "now", "ongoing", "till date", "to date"}


# ============================================================
# SMALL COERCION HELPERS
# ============================================================

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _str_list(value: Any) -> List[str]:
    """Coerce a string or a list of anything into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _bullets(value: Any) -> List[str]:
    """Descriptions arrive either as one block of text or as bullet points."""
    if isinstance(value, str):
        lines = [line.strip(" \t-•*") for line in value.splitlines()]
        return [line for line in lines if line]
    return _str_list(value)


def _dict_list(value: Any) -> List[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _first(item: dict, *keys: str) -> str:
    for key in keys:
        if item.get(key):
            return _text(item[key])
    return ""


# ============================================================
# NORMALIZATION
# ============================================================

def _normalize_education(item: dict) -> dict:
    normalized = dict(item)
    normalized.update({
        "institution": _text(item.get("institution")),
        "degree": _text(item.get("degree")),
        "field": _text(item.get("field")),
        "year": _text(item.get("year")),
        "location": _text(item.get("location")),
        "grade": _text(item.get("grade")),
        "description": _text(item.get("description")),
    })
    return normalized


def _normalize_experience(item: dict) -> dict:
    normalized = {k: v for k, v in item.items() if k not in ("title", "role", "startDate", "endDate")}
    end_date = _first(item, "end_date", "endDate")
    normalized.update({
        "company": _text(item.get("company")),
        # Older parser output used "title" or "role" instead of "position"
        "position": _first(item, "position", "title", "role"),
        "location": _text(item.get("location")),
        "start_date": _first(item, "start_date", "startDate"),
        "end_date": end_date,
        "current": bool(item.get("current")) or end_date.lower() in PRESENT_WORDS,
        "description": _bullets(item.get("description")),
        "technologies": _str_list(item.get("technologies")),
    })
    return normalized


def _normalize_project(item: dict) -> dict:
    normalized = {k: v for k, v in item.items() if k != "link"}
    normalized.update({
        "name": _text(item.get("name")),
        "description": _text(item.get("description")),
        "technologies": _str_list(item.get("technologies")),
        "url": _first(item, "url", "link"),
        "duration": _text(item.get("duration")),
        "highlights": _str_list(item.get("highlights")),
    })
    return normalized


def _normalize_certification(item: dict) -> dict:
    legacy = ("issueDate", "issue_date", "expiryDate", "credentialId", "credentialUrl", "link")
    normalized = {k: v for k, v in item.items() if k not in legacy}
    normalized.update({
        "name": _text(item.get("name")),
        "issuer": _text(item.get("issuer")),
        "date": _first(item, "date", "issue_date", "issueDate"),
        "expiry_date": _first(item, "expiry_date", "expiryDate"),
        "credential_id": _first(item, "credential_id", "credentialId"),
        "credential_url": _first(item, "credential_url", "credentialUrl", "link"),
    })
    return normalized


def _normalize_skills(value: Any) -> Dict[str, List[str]]:
    # A flat list is what the early parser produced; treat it as technical skills
    if isinstance(value, list):
        return {**{c: [] for c in SKILL_CATEGORIES}, "technical": _str_list(value)}
    if not isinstance(value, dict):
        return {c: [] for c in SKILL_CATEGORIES}
    skills = {k: _str_list(v) for k, v in value.items()}
    for category in SKILL_CATEGORIES:
        skills.setdefault(category, [])
    return skills


def _normalize_languages(value: Any) -> List[dict]:
    languages = []
    for item in value if isinstance(value, list) else []:
        if isinstance(item, str) and item.strip():
            languages.append({"name": item.strip(), "proficiency": ""})
        elif isinstance(item, dict) and item.get("name"):
            languages.append({"name": _text(item["name"]), "proficiency": _text(item.get("proficiency"))})
    return languages


def normalize_parsed_data(data: Optional[dict]) -> dict:
    """
    Validate and sanitize parsed resume data into the canonical shape.
    Unknown top-level keys are preserved untouched.
    """
    data = dict(data or {})
    personal = data.pop("personalInfo", None) or data.get("personal_info") or {}
    if not isinstance(personal, dict):
        personal = {}

    normalized = {k: v for k, v in data.items() if k not in ("socialLinks", "social_links")}
    normalized.update({
        "personal_info": {
            "name": _text(personal.get("name")),
            "email": _text(personal.get("email")).lower(),
            "phone": _text(personal.get("phone")),
            "location": _text(personal.get("location")),
        },
        "summary": _text(data.get("summary")),
        "objective": _text(data.get("objective")),
        "education": [_normalize_education(e) for e in _dict_list(data.get("education"))],
        "experience": [_normalize_experience(e) for e in _dict_list(data.get("experience"))],
        "projects": [_normalize_project(p) for p in _dict_list(data.get("projects"))],
        "certifications": [_normalize_certification(c) for c in _dict_list(data.get("certifications"))],
        "skills": _normalize_skills(data.get("skills")),
        "languages": _normalize_languages(data.get("languages")),
        "achievements": _str_list(data.get("achievements")),
    })
    return normalized


def normalize_social_links(links: Optional[dict]) -> dict:
    """Keep known platforms as strings; 'other' is a list of {platform, url}."""
    links = links if isinstance(links, dict) else {}
    normalized = {platform: _text(links.get(platform)) for platform in SOCIAL_PLATFORMS}
    other = []
    for item in links.get("other") or []:
        if isinstance(item, dict) and item.get("url"):
            other.append({"platform": _text(item.get("platform")), "url": _text(item["url"])})
    normalized["other"] = other
    return normalized


def _score(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return int(round(min(100.0, max(0.0, number))))


def normalize_analysis(analysis: Optional[dict]) -> dict:
    """Clamp every score to 0-100 and coerce the text lists."""
    analysis = analysis if isinstance(analysis, dict) else {}
    normalized = {name: _score(analysis.get(name)) for name in ANALYSIS_SCORES}
    for name in ANALYSIS_LISTS:
        normalized[name] = _str_list(analysis.get(name))
    normalized["analyzed_at"] = analysis.get("analyzed_at")
    return normalized


# ============================================================
# PARTIAL EDITS (PUT /resumes/{id})
# Only the keys present in the edit are normalized and returned, so a
# partial edit never adds empty sections to the stored document.
# ============================================================

def normalize_parsed_edit(changes: Optional[dict]) -> dict:
    changes = changes if isinstance(changes, dict) else {}
    present = {"personal_info" if key == "personalInfo" else key for key in changes}
    normalized = normalize_parsed_data(changes)
    return {k: v for k, v in normalized.items() if k in present}


def normalize_analysis_edit(changes: Optional[dict]) -> dict:
    changes = changes if isinstance(changes, dict) else {}
    normalized = dict(changes)
    for name in ANALYSIS_SCORES:
        if name in changes:
            normalized[name] = _score(changes[name])
    for name in ANALYSIS_LISTS:
        if name in changes:
            normalized[name] = _str_list(changes[name])
    return normalized


def normalize_social_links_edit(changes: Optional[dict]) -> dict:
    changes = changes if isinstance(changes, dict) else {}
    normalized = normalize_social_links(changes)
    return {k: v for k, v in normalized.items() if k in changes}


# ============================================================
# INSIGHTS (resume stats)
# ============================================================

def all_skills(parsed_data: Optional[dict]) -> List[str]:
    """Flatten every skill category into one list (first spelling wins for duplicates)."""
    skills = (parsed_data or {}).get("skills") or {}
    if isinstance(skills, list):
        candidates = _str_list(skills)
    else:
        candidates = [s for category in SKILL_CATEGORIES for s in _str_list(skills.get(category))]
    seen = set()
    flat = []
    for skill in candidates:
        if skill.lower() not in seen:
            seen.add(skill.lower())
            flat.append(skill)
    return flat


def _lookup(doc: dict, path: tuple) -> Any:
    value = doc
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def completeness_score(resume: dict) -> int:
    """Weighted percentage of filled-in resume sections."""
    score = 0
    total = 0
    for path, weight, is_list in COMPLETENESS_SECTIONS:
        total += weight
        value = _lookup(resume, path)
        if is_list:
            if isinstance(value, list) and value:
                score += weight
        elif value:
            score += weight
    return round(score / total * 100)


_NUMERIC_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m", "%m/%Y", "%m-%Y", "%Y"]
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def parse_resume_date(value: Optional[str], today: Optional[datetime] = None) -> Optional[datetime]:
    """Parse the loose date strings found in resumes ("Jan 2020", "2020-01", "Present")."""
    text = _text(value)
    if not text:
        return None
    if text.lower() in PRESENT_WORDS:
        return today or utcnow()

    # "Jan 2020", "January, 2020", "Sept. 2020"
    words = re.sub(r"[,.]", " ", text).split()
    if len(words) == 2 and words[0].isalpha() and words[1].isdigit() and len(words[1]) == 4:
        month = _MONTHS.get(words[0][:3].lower())
        return datetime(int(words[1]), month, 1) if month else None

    for fmt in _NUMERIC_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def total_years_of_experience(parsed_data: Optional[dict], today: Optional[datetime] = None) -> float:
    """Sum of all experience spans in years, rounded to one decimal."""
    today = today or utcnow()
    total_months = 0
    for exp in _dict_list((parsed_data or {}).get("experience")):
        start = parse_resume_date(exp.get("start_date") or exp.get("startDate"), today)
        end = today if exp.get("current") else parse_resume_date(exp.get("end_date") or exp.get("endDate"), today)
        if start and end:
            months = (end.year - start.year) * 12 + (end.month - start.month)
            total_months += max(0, months)
    return round(total_months / 12, 1)


def section_counts(parsed_data: Optional[dict]) -> Dict[str, int]:
    parsed_data = parsed_data or {}
    return {
        "education": len(parsed_data.get("education") or []),
        "experience": len(parsed_data.get("experience") or []),
        "projects": len(parsed_data.get("projects") or []),
        "certifications": len(parsed_data.get("certifications") or []),
        "skills": len(all_skills(parsed_data)),
    }
