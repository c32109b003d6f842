#!/usr/bin/env python3
"""
Initialize Supabase database schema with direct PostgreSQL connection
"""
import os
import sys

import psycopg2
from dotenv import load_dotenv

from supportflow.repositories.schema import TABLES, create_schema

load_dotenv()


def get_connection():
    """Get PostgreSQL connection using .env variables"""
    host = os.getenv("SUPABASE_DB_HOST")
    port = int(os.getenv("SUPABASE_DB_PORT", "6543"))
    database = os.getenv("SUPABASE_DB_NAME", "postgres")
    user = os.getenv("SUPABASE_DB_USER")
    password = os.getenv("SUPABASE_DB_PASSWORD")

    print(f"🔗 Connecting to: {host}:{port}")
    print(f"   Database: {database}")
    print(f"   User: {user}")

    return psycopg2.connect(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password
    )


def main() -> bool:
    conn = None
    try:
        conn = get_connection()

        print("🔧 Creating database schema...")
        create_schema(conn)
        print("✅ DDL executed successfully")

        with conn.cursor() as cur:
            for table_name in TABLES:
                cur.execute(f"SELECT COUNT(*) FROM {table_name}")
                count = cur.fetchone()[0]
                print(f"  {table_name}: {count} records")

        return True

    except Exception as e:
        print(f"❌ Error: {str(e)}")
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
