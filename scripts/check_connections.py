#!/usr/bin/env python3
"""
Connection Test Script

Run this to verify MongoDB, the LLM API and SMTP settings.
Usage: python scripts/check_connections.py
"""
from app.core.config import get_settings
from app.db.mongodb import test_mongo_connection
from app.services.llm_client import get_llm_client


def main():
    settings = get_settings()
    print("=" * 50)
    print("RESUME PLATFORM - CONNECTION TEST")
    print("=" * 50)

    # Test MongoDB
    print("\n[1] Testing MongoDB...")
    print(f"    URI: {settings.mongodb_uri}")
    print(f"    Database: {settings.mongodb_db}")
    if test_mongo_connection():
        print("    ✅ MongoDB: CONNECTED")
    else:
        print("    ❌ MongoDB: FAILED")

    # Test LLM (only if API key is set)
    print("\n[2] Testing LLM API...")
    if settings.llm_api_key:
        print(f"    Base URL: {settings.llm_base_url}  Model: {settings.llm_model}")
        if get_llm_client().test_connection():
            print("    ✅ LLM: CONNECTED")
        else:
            print("    ❌ LLM: FAILED")
    else:
        print("    ⚠️  LLM: API key not configured (uploads will fail to parse)")

    # SMTP is only checked for configuration; nothing is sent
    print("\n[3] Checking SMTP settings...")
    if settings.smtp_enabled:
        print(f"    Host: {settings.smtp_host}:{settings.smtp_port}  From: {settings.smtp_from}")
        print("    ✅ SMTP: CONFIGURED")
    else:
        print("    ⚠️  SMTP: credentials missing (verification codes will not be mailed)")

    print("\n" + "=" * 50)
    print("Connection test complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
