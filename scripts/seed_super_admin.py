#!/usr/bin/env python3
"""
Seed the first superadmin user.

Reads SUPER_ADMIN_USERNAME and SUPER_ADMIN_PASSWORD from .env file.
Run from project root: python scripts/seed_super_admin.py
"""

import sys
import os

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Load .env file
from dotenv import load_dotenv
load_dotenv(os.path.join(project_root, ".env"))

from yamo.db import supabase
from yamo.routers.users import hash_password


def main():
    username = os.getenv("SUPER_ADMIN_USERNAME")
    password = os.getenv("SUPER_ADMIN_PASSWORD")

    if not username or not password:
        print("Error: SUPER_ADMIN_USERNAME and SUPER_ADMIN_PASSWORD must be set in .env")
        sys.exit(1)

    existing = supabase.table("users").select("id, superadmin").eq("username", username).execute()
    if existing.data:
        if existing.data[0].get("superadmin"):
            print(f"Superadmin '{username}' already exists.")
        else:
            supabase.table("users").update({"superadmin": True}).eq("id", existing.data[0]["id"]).execute()
            print(f"Promoted existing user '{username}' to superadmin.")
        sys.exit(0)

    result = supabase.table("users").insert({
        "username": username,
        "password_hash": hash_password(password),
        "superadmin": True,
    }).execute()

    if result.data:
        user = result.data[0]
        print("Created superadmin:")
        print(f"  ID: {user['id']}")
        print(f"  Username: {user['username']}")
        print(f"  Created: {user['created_at']}")
    else:
        print("Error: Failed to create superadmin")
        sys.exit(1)


if __name__ == "__main__":
    main()
