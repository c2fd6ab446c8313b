"""001 – Initial schema: directory, holidays, leave ledger, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+05:30
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
    ("gender_type", ["M", "F"]),
    ("region_type", ["IND", "US"]),
    ("employment_type", ["FTE", "FTDC", "CONSULTANT"]),
    ("user_role", ["employee", "manager", "hr_admin", "system_admin"]),
    ("gender_restriction", ["NONE", "MALE_ONLY", "FEMALE_ONLY"]),
    ("region_restriction", ["ALL", "IND", "US"]),
    ("accrual_frequency", ["NONE", "MONTHLY", "YEARLY"]),
    ("leave_status", ["PENDING", "APPROVED", "REJECTED", "CANCELLED"]),
    ("day_type", ["FULL", "FIRST_HALF", "SECOND_HALF"]),
    ("approval_status", ["APPROVED", "REJECTED"]),
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

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         VARCHAR(50)  NOT NULL UNIQUE,
            first_name          VARCHAR(100) NOT NULL,
            last_name           VARCHAR(100) NOT NULL,
            email               VARCHAR(255) NOT NULL UNIQUE,
            gender              gender_type,
            region              region_type,
            employment_type     employment_type,
            role                user_role NOT NULL DEFAULT 'employee',
            date_of_joining     DATE,
            manager_employee_id VARCHAR(50) REFERENCES employees(employee_id),
            is_active           BOOLEAN DEFAULT TRUE,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_employees_cohort ON employees(region, employment_type) "
        "WHERE is_active"
    )
    op.execute("CREATE INDEX ix_employees_manager ON employees(manager_employee_id)")

    # ── 2. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            date        DATE NOT NULL,
            region      region_type NOT NULL,
            description VARCHAR(150) NOT NULL,
            year        INTEGER NOT NULL,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_holiday_date_region UNIQUE(date, region)
        )
    """)
    op.execute("CREATE INDEX ix_holidays_region_year ON holidays(region, year)")

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code                   VARCHAR(10)  NOT NULL UNIQUE,
            name                   VARCHAR(100) NOT NULL,
            category               VARCHAR(50),
            is_paid                BOOLEAN DEFAULT TRUE,
            allow_half_day         BOOLEAN DEFAULT TRUE,
            gender_restriction     gender_restriction NOT NULL DEFAULT 'NONE',
            region_restriction     region_restriction NOT NULL DEFAULT 'ALL',
            carry_forward_allowed  BOOLEAN DEFAULT FALSE,
            max_carry_forward_days NUMERIC(6,1) DEFAULT 0,
            accrual_frequency      accrual_frequency NOT NULL DEFAULT 'NONE',
            annual_allocation      NUMERIC(6,1) DEFAULT 0,
            allow_negative_balance BOOLEAN DEFAULT FALSE,
            max_consecutive_days   INTEGER,
            is_active              BOOLEAN DEFAULT TRUE,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            updated_at             TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 4. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     VARCHAR(50) NOT NULL REFERENCES employees(employee_id),
            leave_type_code VARCHAR(10) NOT NULL REFERENCES leave_types(code),
            year            INTEGER NOT NULL,
            allocated       NUMERIC(6,1) DEFAULT 0,
            used            NUMERIC(6,1) DEFAULT 0,
            pending         NUMERIC(6,1) DEFAULT 0,
            available       NUMERIC(6,1) DEFAULT 0,
            carried_forward NUMERIC(6,1) DEFAULT 0,
            expired         NUMERIC(6,1) DEFAULT 0,
            encashed        NUMERIC(6,1) DEFAULT 0,
            carried_out     NUMERIC(6,1) DEFAULT 0,
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE(employee_id, leave_type_code, year),
            CONSTRAINT ck_leave_balance_components_non_negative CHECK (
                allocated >= 0 AND used >= 0 AND pending >= 0
                AND carried_forward >= 0 AND expired >= 0
                AND encashed >= 0 AND carried_out >= 0
            ),
            CONSTRAINT ck_leave_balance_available CHECK (
                available = allocated + carried_forward - used - pending
                            - expired - encashed - carried_out
            )
        )
    """)

    # ── 5. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         VARCHAR(50) NOT NULL REFERENCES employees(employee_id),
            leave_type_code     VARCHAR(10) NOT NULL REFERENCES leave_types(code),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            start_day_type      day_type NOT NULL DEFAULT 'FULL',
            end_day_type        day_type NOT NULL DEFAULT 'FULL',
            total_days          NUMERIC(6,1) NOT NULL,
            reason              TEXT,
            status              leave_status NOT NULL DEFAULT 'PENDING',
            applied_date        DATE NOT NULL,
            rejection_reason    TEXT,
            rejected_by         VARCHAR(50),
            cancellation_reason TEXT,
            cancelled_by        VARCHAR(50),
            cancelled_at        TIMESTAMPTZ,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_request_days CHECK (total_days > 0)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_req_emp_dates "
        "ON leave_requests(employee_id, start_date, end_date)"
    )
    op.execute("CREATE INDEX ix_leave_req_status ON leave_requests(status)")

    # ── 6. approvals ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE approvals (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_request_id UUID NOT NULL REFERENCES leave_requests(id),
            approver_id      VARCHAR(50) NOT NULL REFERENCES employees(employee_id),
            level            INTEGER DEFAULT 1,
            status           approval_status NOT NULL,
            comments         TEXT,
            decided_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_approvals_request ON approvals(leave_request_id)")

    # ── 7. policy_process_history ─────────────────────────────────────────
    op.execute("""
        CREATE TABLE policy_process_history (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            region             region_type NOT NULL,
            employment_type    employment_type NOT NULL,
            month              INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
            year               INTEGER NOT NULL,
            leave_type_amounts JSONB NOT NULL,
            employees_count    INTEGER DEFAULT 0,
            run_count          INTEGER DEFAULT 1,
            processed_by       VARCHAR(50) NOT NULL,
            processed_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_policy_process_period
                UNIQUE(region, employment_type, month, year)
        )
    """)

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    VARCHAR(50),
            action      VARCHAR(50)  NOT NULL,
            entity_type VARCHAR(50)  NOT NULL,
            entity_id   VARCHAR(100) NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute(
        "CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "policy_process_history",
        "approvals",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "holidays",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
