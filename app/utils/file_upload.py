"""
File Upload Utility - Extract text from resume files.

Supported formats:
- PDF (.pdf) using PyPDF2
- Word (.docx) using python-docx
- Plain Text (.txt)

Max file size: MAX_UPLOAD_MB (default 5MB)
"""

import io
from typing import Tuple
from zipfile import BadZipFile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from fastapi import UploadFile, HTTPException
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from app.core.config import get_settings

ALLOWED_EXTENSIONS = {'.pdf', '.docx', '.txt'}

CONTENT_TYPES = {
    '.pdf': 'application/pdf',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.txt': 'text/plain',
}


def get_file_extension(filename: str) -> str:
    """Get lowercase file extension."""
    if '.' not in filename:
        return ''
    return '.' + filename.rsplit('.', 1)[1].lower()


async def read_upload(file: UploadFile) -> Tuple[bytes, str]:
    """
    Validate name, type and size of an upload.

    Returns:
        Tuple of (content, extension)
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    ext = get_file_extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. Allowed: PDF, DOCX, TXT"
        )

    content = await file.read()

    max_mb = get_settings().max_upload_mb
    if len(content) > max_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File size must be less than {max_mb}MB"
        )
    return content, ext


def extract_text(content: bytes, ext: str) -> str:
    """Extract text based on the file extension."""
    if ext == '.pdf':
        text = extract_from_pdf(content)
    elif ext == '.docx':
        text = extract_from_docx(content)
    else:  # .txt
        text = extract_from_txt(content)

    if not text.strip():
        raise HTTPException(
            status_code=400,
            detail="Could not extract text from file. File may be empty or corrupted."
        )
    return text


def extract_from_pdf(content: bytes) -> str:
    """Extract text from PDF bytes."""
    try:
        reader = PdfReader(io.BytesIO(content))
        text_parts = []
        for page in reader.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)
        return '\n'.join(text_parts)
    except (PdfReadError, ValueError, OSError) as e:
        raise HTTPException(status_code=400, detail=f"Error reading PDF: {str(e)}")


def extract_from_docx(content: bytes) -> str:
    """Extract text from DOCX bytes."""
    try:
        doc = Document(io.BytesIO(content))
    except (PackageNotFoundError, BadZipFile, KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Error reading DOCX: {str(e)}")

    text_parts = []

    # Extract paragraphs
    for para in doc.paragraphs:
        if para.text.strip():
            text_parts.append(para.text)

    # Extract tables
    for table in doc.tables:
        for row in table.rows:
            row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if row_text:
                text_parts.append(' | '.join(row_text))

    return '\n'.join(text_parts)


def extract_from_txt(content: bytes) -> str:
    """Extract text from TXT bytes."""
    for encoding in ['utf-8', 'cp1252']:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    return content.decode('latin-1')
