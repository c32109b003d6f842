"""
Supabase schema for the SupportFlow collections

Applied by ``scripts/init_supabase_schema.py``. Column names match the
pydantic models in ``supportflow.models.schemas``; ids are text because the
document store generates them client-side.
"""

SCHEMA_SQL = """
-- Users (keyed by auth uid)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    display_name TEXT,
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'agent', 'admin'))
);

-- Tickets
CREATE TABLE IF NOT EXISTS tickets (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    description TEXT NOT NULL,
    user_id TEXT NOT NULL,
    user_email TEXT,
    user_name TEXT,
    status TEXT NOT NULL DEFAULT 'open'
        CHECK (status IN ('open', 'in-progress', 'resolved', 'closed')),
    priority TEXT CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
    category TEXT,
    tags JSONB NOT NULL DEFAULT '[]'::jsonb,
    assigned_agent_id TEXT,
    assigned_agent_name TEXT,
    message_count INTEGER NOT NULL DEFAULT 0 CHECK (message_count >= 0),
    has_unread_messages BOOLEAN NOT NULL DEFAULT FALSE,
    last_message_at TIMESTAMPTZ,
    priority_index INTEGER,
    category_index TEXT,
    ai_metadata JSONB NOT NULL DEFAULT '{"processing_status": "pending", "used_fallback": false}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Messages
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    ticket_id TEXT NOT NULL REFERENCES tickets(id),
    text TEXT NOT NULL,
    user_id TEXT NOT NULL,
    user_name TEXT,
    role TEXT NOT NULL CHECK (role IN ('user', 'agent')),
    is_ai_suggestion BOOLEAN NOT NULL DEFAULT FALSE,
    is_edited BOOLEAN NOT NULL DEFAULT FALSE,
    edited_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Single composite index per listing query
CREATE INDEX IF NOT EXISTS idx_tickets_user_created ON tickets(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_ticket_created ON messages(ticket_id, created_at ASC);

-- Realtime publication for subscriptions
DO $$
BEGIN
    ALTER PUBLICATION supabase_realtime ADD TABLE tickets, messages;
EXCEPTION WHEN duplicate_object THEN
    NULL;
END $$;
"""

TABLES = ("users", "tickets", "messages")


def create_schema(connection) -> None:
    """
    Execute the DDL on an open DB-API connection

    Args:
        connection: psycopg2 connection (committed on success)
    """
    with connection.cursor() as cursor:
        cursor.execute(SCHEMA_SQL)
    connection.commit()
