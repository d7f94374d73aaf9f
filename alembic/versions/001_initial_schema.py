"""001 – Initial schema: companies, employees, leave requests, reconciliation log.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("company_status", ["active", "inactive"]),
    ("employee_status", ["active", "inactive", "on_leave"]),
    ("user_role", ["employee", "manager", "hr", "admin"]),
    ("leave_status", ["pending", "approved", "rejected", "canceled"]),
    ("leave_type", ["annual", "sick", "personal", "other"]),
    ("manager_approval_status", ["pending", "approved", "rejected"]),
    ("reconciliation_action", ["consume", "restore"]),
    ("reconciliation_outcome", ["applied", "failed"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. companies ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE companies (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name          VARCHAR(200) NOT NULL UNIQUE,
            email_domain  VARCHAR(255) NOT NULL UNIQUE,
            status        company_status DEFAULT 'active',
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    # leave_total NULL = no balance configured
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id              UUID NOT NULL UNIQUE,
            company_id           UUID NOT NULL REFERENCES companies(id),
            first_name           VARCHAR(100) NOT NULL,
            last_name            VARCHAR(100) NOT NULL,
            email                VARCHAR(255) NOT NULL UNIQUE,
            position             VARCHAR(150),
            role                 user_role DEFAULT 'employee',
            status               employee_status DEFAULT 'active',
            reporting_manager_id UUID REFERENCES employees(id),
            leave_total          INTEGER,
            leave_used           INTEGER NOT NULL DEFAULT 0,
            leave_remaining      INTEGER GENERATED ALWAYS AS (leave_total - leave_used) STORED,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_total_non_negative CHECK (leave_total IS NULL OR leave_total >= 0),
            CONSTRAINT ck_leave_used_non_negative  CHECK (leave_used >= 0)
        )
    """)
    op.execute("CREATE INDEX ix_employees_company_id ON employees(company_id)")
    op.execute(
        "CREATE INDEX ix_employees_reporting_manager_id ON employees(reporting_manager_id)"
    )

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL REFERENCES employees(id),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            type                leave_type NOT NULL,
            reason              TEXT NOT NULL,
            status              leave_status NOT NULL DEFAULT 'pending',
            comments            TEXT,
            manager_status      manager_approval_status NOT NULL DEFAULT 'pending',
            manager_approved_by UUID REFERENCES employees(id),
            manager_approved_at TIMESTAMPTZ,
            manager_comments    TEXT NOT NULL DEFAULT '',
            version             INTEGER NOT NULL DEFAULT 1,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_date_range CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_status
            ON leave_requests(employee_id, status)
    """)

    # ── 4. leave_reconciliation_events ────────────────────────────────────
    # No FK on leave_request_id: events outlive deleted requests
    op.execute("""
        CREATE TABLE leave_reconciliation_events (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_request_id UUID NOT NULL,
            employee_id      UUID NOT NULL,
            action           reconciliation_action NOT NULL,
            days             INTEGER NOT NULL,
            outcome          reconciliation_outcome NOT NULL,
            detail           TEXT,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.create_index(
        "ix_reconciliation_events_leave",
        "leave_reconciliation_events",
        ["leave_request_id"],
    )
    op.create_index(
        "ix_reconciliation_events_employee",
        "leave_reconciliation_events",
        ["employee_id"],
    )
    op.create_index(
        "ix_reconciliation_events_outcome",
        "leave_reconciliation_events",
        ["outcome"],
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "leave_reconciliation_events",
        "leave_requests",
        "employees",
        "companies",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
