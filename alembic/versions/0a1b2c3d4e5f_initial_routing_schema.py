"""initial routing, automation and handover schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e5f"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
    )


def upgrade() -> None:
    op.create_table(
        "teams",
        _uuid_pk("team_id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("region", sa.String(100)),
        sa.Column("specializations", postgresql.ARRAY(sa.String())),
        _created_at(),
    )

    op.create_table(
        "advisors",
        _uuid_pk("advisor_id"),
        sa.Column(
            "team_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("teams.team_id", ondelete="SET NULL"),
        ),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("specializations", postgresql.ARRAY(sa.String())),
        sa.Column("current_assignments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_daily_assignments", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("conversion_rate", sa.Numeric(5, 2)),
        sa.Column("average_response_time_hours", sa.Numeric(8, 2)),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("current_assignments >= 0", name="ck_advisor_assignments_nonneg"),
        sa.CheckConstraint("max_daily_assignments >= 0", name="ck_advisor_capacity_nonneg"),
    )

    op.create_table(
        "leads",
        _uuid_pk("lead_id"),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("country", sa.String(100)),
        sa.Column("source", sa.String(30), nullable=False, server_default="web"),
        sa.Column("status", sa.String(30), nullable=False, server_default="new"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("lead_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("program_interest", postgresql.ARRAY(sa.String())),
        sa.Column("documents_submitted", postgresql.ARRAY(sa.String())),
        sa.Column("activity_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True)),
        sa.Column("last_activity_type", sa.String(50)),
        sa.Column("qualification_stage", sa.String(30)),
        sa.Column(
            "assigned_to",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("advisors.advisor_id", ondelete="SET NULL"),
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True)),
        sa.Column("assignment_method", sa.String(30)),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("lead_score BETWEEN 0 AND 100", name="ck_lead_score_range"),
        sa.CheckConstraint("activity_count >= 0", name="ck_lead_activity_count_nonneg"),
        sa.CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'nurturing', "
            "'converted', 'lost', 'unqualified')",
            name="ck_lead_status",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')", name="ck_lead_priority"
        ),
    )
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_qualification_stage", "leads", ["qualification_stage"])
    op.create_index("ix_leads_assigned_to", "leads", ["assigned_to"])

    op.create_table(
        "lead_routing_rules",
        _uuid_pk("rule_id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "conditions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("assignment_config", postgresql.JSONB(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "ix_routing_rules_active_priority", "lead_routing_rules", ["is_active", "priority"]
    )

    op.create_table(
        "rule_execution_logs",
        _uuid_pk("log_id"),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lead_routing_rules.rule_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("execution_result", sa.Text(), nullable=False),
        sa.Column("execution_time_ms", sa.Integer()),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True)),
        sa.Column("error_message", sa.Text()),
        _created_at(),
        sa.CheckConstraint(
            "execution_result IN ('success', 'failure', 'skipped')",
            name="ck_rule_execution_result",
        ),
    )
    op.create_index(
        "ix_rule_execution_logs_rule_created",
        "rule_execution_logs",
        ["rule_id", "created_at"],
    )

    op.create_table(
        "automation_rules",
        _uuid_pk("rule_id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("trigger_type", sa.String(30), nullable=False),
        sa.Column(
            "conditions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "actions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("evaluation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_executed", sa.DateTime(timezone=True)),
        _created_at(),
        sa.CheckConstraint(
            "trigger_type IN ('score_threshold', 'time_based', "
            "'activity_based', 'status_change')",
            name="ck_automation_trigger_type",
        ),
        sa.CheckConstraint(
            "success_count <= execution_count", name="ck_automation_success_le_exec"
        ),
    )

    op.create_table(
        "automation_execution_logs",
        _uuid_pk("log_id"),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("automation_rules.rule_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("execution_result", sa.Text(), nullable=False),
        sa.Column("execution_time_ms", sa.Integer()),
        sa.Column("failed_actions", postgresql.JSONB()),
        sa.Column("error_message", sa.Text()),
        _created_at(),
        sa.CheckConstraint(
            "execution_result IN ('success', 'failure', 'skipped')",
            name="ck_automation_execution_result",
        ),
    )
    op.create_index(
        "ix_automation_execution_logs_rule_created",
        "automation_execution_logs",
        ["rule_id", "created_at"],
    )

    op.create_table(
        "automation_lead_states",
        _uuid_pk("state_id"),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("automation_rules.rule_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("observed_score", sa.Integer()),
        sa.Column("observed_status", sa.String(30)),
        sa.Column("observed_activity_at", sa.DateTime(timezone=True)),
        sa.Column("in_band", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("nudged_for", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _updated_at(),
        sa.UniqueConstraint("rule_id", "lead_id", name="uq_automation_lead_state"),
    )

    op.create_table(
        "round_robin_cursors",
        sa.Column("pool_key", sa.String(500), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        _updated_at(),
    )

    op.create_table(
        "students",
        _uuid_pk("student_id"),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("student_number", sa.String(40), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("program", sa.String(200)),
        sa.Column("advisor_id", postgresql.UUID(as_uuid=True)),
        _created_at(),
        sa.UniqueConstraint("lead_id", name="uq_student_lead"),
    )

    op.create_table(
        "conversion_records",
        _uuid_pk("record_id"),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("students.student_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("conversion_method", sa.String(20), nullable=False),
        sa.Column(
            "converted_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
        sa.UniqueConstraint("lead_id", name="uq_conversion_record_lead"),
        sa.UniqueConstraint("student_id", name="uq_conversion_record_student"),
        sa.CheckConstraint(
            "conversion_method IN ('manual', 'bulk', 'automation')",
            name="ck_conversion_method",
        ),
    )


def downgrade() -> None:
    op.drop_table("conversion_records")
    op.drop_table("students")
    op.drop_table("round_robin_cursors")
    op.drop_table("automation_lead_states")
    op.drop_index("ix_automation_execution_logs_rule_created", "automation_execution_logs")
    op.drop_table("automation_execution_logs")
    op.drop_table("automation_rules")
    op.drop_index("ix_rule_execution_logs_rule_created", "rule_execution_logs")
    op.drop_table("rule_execution_logs")
    op.drop_index("ix_routing_rules_active_priority", "lead_routing_rules")
    op.drop_table("lead_routing_rules")
    op.drop_index("ix_leads_assigned_to", "leads")
    op.drop_index("ix_leads_qualification_stage", "leads")
    op.drop_index("ix_leads_status", "leads")
    op.drop_table("leads")
    op.drop_table("advisors")
    op.drop_table("teams")
