"""
Resume Platform Backend
Account verification and versioned resume storage with AI-assisted parsing.

Architecture:
- MongoDB: accounts and resume versions (one document per upload)
- LLM (OpenAI-compatible, DeepSeek by default): resume parsing and analysis only
- SMTP: verification codes and welcome mails
"""

__version__ = "1.0.0"
