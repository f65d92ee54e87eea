"""public read/insert RLS policies for crop_detections

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18 09:45:00
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "20261018_000002"
down_revision = "20261018_000001"
branch_labels = None
depends_on = None

POLICIES = {
    "Anyone can view crop detections": "FOR SELECT USING (true)",
    "Anyone can create crop detections": "FOR INSERT WITH CHECK (true)",
}


def _has_role(role_name: str) -> bool:
    """Check if a PostgreSQL role exists (Supabase envs have anon)."""
    from sqlalchemy import text

    conn = op.get_bind()
    result = conn.execute(
        text("SELECT 1 FROM pg_roles WHERE rolname = :r"), {"r": role_name}
    ).scalar()
    return result is not None


def upgrade() -> None:
    # Detection history is public demo data: anyone may read and add rows.
    # No UPDATE or DELETE policy exists, so with RLS on those are denied.
    if not _has_role("anon"):
        # No anon role (plain PostgreSQL): skip RLS policies
        return

    op.execute("ALTER TABLE public.crop_detections ENABLE ROW LEVEL SECURITY;")
    for name, clause in POLICIES.items():
        op.execute(f'CREATE POLICY "{name}" ON public.crop_detections {clause};')


def downgrade() -> None:
    for name in POLICIES:
        op.execute(f'DROP POLICY IF EXISTS "{name}" ON public.crop_detections;')
    op.execute("ALTER TABLE public.crop_detections DISABLE ROW LEVEL SECURITY;")
