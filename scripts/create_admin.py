#!/usr/bin/env python3
"""
Create the first admin account (admins cannot self-register).

Usage: python scripts/create_admin.py <email> <password> [name]
"""
import sys

from app.core.errors import Conflict
from app.db.mongodb import init_mongo_indexes
from app.services.account_service import get_account_service


def main():
    if len(sys.argv) < 3:
        print("Usage: python scripts/create_admin.py <email> <password> [name]")
        sys.exit(1)

    email, password = sys.argv[1], sys.argv[2]
    name = sys.argv[3] if len(sys.argv) > 3 else "Administrator"

    init_mongo_indexes()
    try:
        account = get_account_service().create_by_admin(name, email, password, role="admin")
    except Conflict:
        print(f"❌ An account with email {email} already exists")
        sys.exit(1)

    print(f"✅ Admin created: {account['email']} (id {account['_id']})")


if __name__ == "__main__":
    main()
