"""
Resume Routes

GET /resumes/active - Active resume (null when none)
GET /resumes/history - Version summaries, newest first
GET /resumes/stats - Completeness / experience stats of the active resume
POST /resumes/upload - Upload a file (PDF/DOCX/TXT), parse with AI, store as active
POST /resumes - Save already-parsed content as a new active version
GET /resumes/{resume_id} - One version
PUT /resumes/{resume_id} - Edit content of a version
POST /resumes/{resume_id}/activate - Make a version the active one
POST /resumes/{resume_id}/deactivate - Keep in history, no longer active
DELETE /resumes/{resume_id} - Delete a version permanently

Store operations block while another request holds the account's resume
lease, so these handlers are sync and run in FastAPI's threadpool.
"""

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from app.core.auth import get_current_user
from app.db.mongodb import serialize_doc, serialize_docs
from app.services.account_service import get_account_service
from app.services.resume_content import (
    all_skills, completeness_score, normalize_analysis, normalize_analysis_edit,
    normalize_parsed_data, normalize_parsed_edit, normalize_social_links,
    normalize_social_links_edit, section_counts, total_years_of_experience,
)
from app.services.resume_parsing_service import get_resume_parser
from app.services.resume_version_store import get_resume_store, MAX_HISTORY_LIMIT
from app.utils.file_upload import CONTENT_TYPES, extract_text, read_upload
from app.schemas.schemas import ResumeCreate, ResumeUpdate, MessageResponse

router = APIRouter(prefix="/resumes", tags=["Resumes"])


def _summary(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "file_name": doc.get("file_name"),
        "version": doc.get("version"),
        "is_active": doc.get("is_active"),
        "uploaded_at": doc.get("uploaded_at"),
    }


@router.get("/active")
def get_active_resume(user: dict = Depends(get_current_user)):
    """Get the active resume, or null."""
    resume = get_resume_store().get_active(user["user_id"])
    if resume is None:
        return {"success": True, "message": "No active resume found", "resume": None}
    return {"success": True, "resume": serialize_doc(resume)}


@router.get("/history")
def get_resume_history(
    limit: int = Query(None, ge=1, le=MAX_HISTORY_LIMIT),
    user: dict = Depends(get_current_user),
):
    """Resume history without parsed content, newest first."""
    resumes = serialize_docs(get_resume_store().list_history(user["user_id"], limit))
    return {"success": True, "resumes": resumes, "count": len(resumes)}


@router.get("/stats")
def get_resume_stats(user: dict = Depends(get_current_user)):
    """Statistics derived from the active resume."""
    store = get_resume_store()
    resume = store.get_active(user["user_id"])
    if resume is None:
        return {"success": True, "message": "No active resume found", "stats": None}

    parsed_data = resume.get("parsed_data") or {}
    stats = {
        "file_name": resume.get("file_name"),
        "version": resume.get("version"),
        "uploaded_at": resume.get("uploaded_at"),
        "completeness_score": completeness_score(resume),
        "total_years_of_experience": total_years_of_experience(parsed_data, store.clock()),
        "counts": section_counts(parsed_data),
        "skills": all_skills(parsed_data),
        "ai_analysis": resume.get("ai_analysis"),
        "has_active_resume": True,
    }
    return {
        "success": True,
        "stats": stats,
        "total_resumes": store.count_for_account(user["user_id"]),
    }


@router.post("/upload", status_code=201)
async def upload_resume(
    resume: UploadFile = File(...),
    user: dict = Depends(get_current_user),
):
    """
    Upload a resume file, parse it with AI and store it as the new active version.

    Parse failures store nothing; a failed analysis still stores the version.
    """
    content, ext = await read_upload(resume)
    text = extract_text(content, ext)
    account = get_account_service().get_by_id(user["user_id"])

    doc = await run_in_threadpool(
        get_resume_parser().parse_and_store,
        account,
        text,
        file_name=resume.filename,
        file_size=len(content),
        file_type=resume.content_type or CONTENT_TYPES[ext],
    )
    return {
        "success": True,
        "message": "Resume parsed and saved successfully",
        "resume": serialize_doc(doc),
    }


@router.post("", status_code=201)
def create_resume(data: ResumeCreate, user: dict = Depends(get_current_user)):
    """Save reviewed resume content as a new version (becomes active)."""
    doc = get_resume_store().create_version(user["user_id"], {
        "file_name": data.file_name,
        "file_url": data.file_url,
        "file_size": data.file_size,
        "file_type": data.file_type,
        "parsed_data": normalize_parsed_data(data.parsed_data),
        "social_links": normalize_social_links(
            data.social_links or data.parsed_data.get("social_links") or data.parsed_data.get("socialLinks")
        ),
        "ai_analysis": normalize_analysis(data.ai_analysis),
        "parsing_status": "completed",
        "notes": data.notes,
    })
    return {"success": True, "message": "Resume saved successfully!", "resume": _summary(doc)}


@router.get("/{resume_id}")
def get_resume(resume_id: str, user: dict = Depends(get_current_user)):
    """Get one of your resume versions."""
    resume = get_resume_store().get_version(resume_id, user["user_id"])
    return {"success": True, "resume": serialize_doc(resume)}


@router.put("/{resume_id}")
def update_resume(resume_id: str, data: ResumeUpdate, user: dict = Depends(get_current_user)):
    """Edit parsed content, links, analysis or notes of a version."""
    resume = get_resume_store().update_content(
        resume_id,
        user["user_id"],
        parsed_data=normalize_parsed_edit(data.parsed_data),
        ai_analysis=normalize_analysis_edit(data.ai_analysis),
        social_links=normalize_social_links_edit(data.social_links),
        notes=data.notes,
    )
    return {"success": True, "message": "Resume updated successfully", "resume": serialize_doc(resume)}


@router.post("/{resume_id}/activate")
def activate_resume(resume_id: str, user: dict = Depends(get_current_user)):
    """Make this version the active resume."""
    resume = get_resume_store().activate_version(resume_id, user["user_id"])
    return {"success": True, "message": "Resume activated successfully", "resume": _summary(resume)}


@router.post("/{resume_id}/deactivate", response_model=MessageResponse)
def deactivate_resume(resume_id: str, user: dict = Depends(get_current_user)):
    """Keep the version in history but stop using it as the active resume."""
    get_resume_store().deactivate(resume_id, user["user_id"])
    return MessageResponse(message="Resume deactivated successfully")


@router.delete("/{resume_id}", response_model=MessageResponse)
def delete_resume(resume_id: str, user: dict = Depends(get_current_user)):
    """Delete a version permanently."""
    get_resume_store().delete_version(resume_id, user["user_id"])
    return MessageResponse(message="Resume deleted successfully")
