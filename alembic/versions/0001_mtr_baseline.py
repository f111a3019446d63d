"""Baseline migration - workplaces, patients, MTR sessions and clinical records

Revision ID: 0001_mtr_baseline
Revises:
Create Date: 2024-12-02

Creates the MTR schema on PostgreSQL, including the per-patient partial
unique index for open sessions and the workplace counter table used for
review numbers.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_mtr_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create MTR tables."""

    # ==========================================================================
    # Workplaces and patients
    # ==========================================================================
    op.execute('''
        CREATE TABLE workplaces (
            id UUID PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE patients (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            mrn VARCHAR(50),
            full_name VARCHAR(255) NOT NULL,
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_patients_workplace ON patients(workplace_id)')

    op.execute('''
        CREATE TABLE workplace_counters (
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            counter_type VARCHAR(50) NOT NULL,
            current_value BIGINT NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (workplace_id, counter_type)
        )
    ''')

    # ==========================================================================
    # MTR sessions
    # ==========================================================================
    op.execute('''
        CREATE TABLE mtr_sessions (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            patient_id UUID NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
            pharmacist_id UUID NOT NULL,
            review_number VARCHAR(20) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'in_progress',
            priority VARCHAR(20) NOT NULL DEFAULT 'routine',
            review_type VARCHAR(20) NOT NULL DEFAULT 'initial',
            steps JSONB NOT NULL,
            medications JSONB NOT NULL DEFAULT '[]'::jsonb,
            plan JSONB,
            clinical_outcomes JSONB NOT NULL,
            patient_consent BOOLEAN NOT NULL DEFAULT false,
            confidentiality_agreed BOOLEAN NOT NULL DEFAULT false,
            started_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ,
            next_review_date TIMESTAMPTZ,
            estimated_duration INTEGER,
            referral_source VARCHAR(100),
            review_reason VARCHAR(500),
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            created_by UUID NOT NULL,
            updated_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            version INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT uq_mtr_review_number UNIQUE (workplace_id, review_number)
        )
    ''')
    # At most one open session per patient
    op.execute('''
        CREATE UNIQUE INDEX uq_mtr_active_session_per_patient
        ON mtr_sessions(patient_id)
        WHERE status IN ('in_progress', 'on_hold') AND NOT is_deleted
    ''')
    op.execute('CREATE INDEX idx_mtr_sessions_workplace_status ON mtr_sessions(workplace_id, status)')
    op.execute('CREATE INDEX idx_mtr_sessions_workplace_created ON mtr_sessions(workplace_id, created_at)')
    op.execute('CREATE INDEX idx_mtr_sessions_patient_created ON mtr_sessions(patient_id, created_at)')
    op.execute('CREATE INDEX idx_mtr_sessions_pharmacist ON mtr_sessions(workplace_id, pharmacist_id)')

    # ==========================================================================
    # Drug therapy problems
    # ==========================================================================
    op.execute('''
        CREATE TABLE drug_therapy_problems (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            patient_id UUID NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
            review_id UUID NOT NULL REFERENCES mtr_sessions(id) ON DELETE CASCADE,
            category VARCHAR(20) NOT NULL,
            subcategory VARCHAR(100),
            type VARCHAR(30) NOT NULL,
            severity VARCHAR(20) NOT NULL,
            evidence_level VARCHAR(20) NOT NULL,
            description TEXT NOT NULL,
            clinical_significance TEXT,
            affected_medications JSONB NOT NULL DEFAULT '[]'::jsonb,
            related_conditions JSONB NOT NULL DEFAULT '[]'::jsonb,
            risk_factors JSONB NOT NULL DEFAULT '[]'::jsonb,
            status VARCHAR(20) NOT NULL DEFAULT 'identified',
            resolution JSONB,
            identified_by UUID NOT NULL,
            identified_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            created_by UUID NOT NULL,
            updated_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_dtp_review ON drug_therapy_problems(review_id, created_at)')
    op.execute('CREATE INDEX idx_dtp_workplace_status ON drug_therapy_problems(workplace_id, status)')
    op.execute('CREATE INDEX idx_dtp_workplace_severity ON drug_therapy_problems(workplace_id, severity)')
    op.execute('CREATE INDEX idx_dtp_patient ON drug_therapy_problems(patient_id)')

    # ==========================================================================
    # Interventions
    # ==========================================================================
    op.execute('''
        CREATE TABLE mtr_interventions (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            patient_id UUID NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
            review_id UUID NOT NULL REFERENCES mtr_sessions(id) ON DELETE CASCADE,
            type VARCHAR(30) NOT NULL,
            category VARCHAR(30) NOT NULL,
            description TEXT NOT NULL,
            rationale TEXT NOT NULL,
            target_audience VARCHAR(30) NOT NULL,
            communication_method VARCHAR(20) NOT NULL,
            outcome VARCHAR(20) NOT NULL DEFAULT 'pending',
            outcome_details TEXT,
            follow_up_required BOOLEAN NOT NULL DEFAULT false,
            follow_up_date TIMESTAMPTZ,
            follow_up_completed BOOLEAN NOT NULL DEFAULT false,
            documentation TEXT NOT NULL DEFAULT '',
            priority VARCHAR(10) NOT NULL DEFAULT 'medium',
            urgency VARCHAR(20) NOT NULL DEFAULT 'routine',
            performed_by UUID NOT NULL,
            performed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            created_by UUID NOT NULL,
            updated_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_mtr_interventions_review ON mtr_interventions(review_id, created_at)')
    op.execute('CREATE INDEX idx_mtr_interventions_workplace_outcome ON mtr_interventions(workplace_id, outcome)')
    op.execute('''
        CREATE INDEX idx_mtr_interventions_follow_up
        ON mtr_interventions(workplace_id, follow_up_required, follow_up_date)
    ''')

    # ==========================================================================
    # Follow-ups
    # ==========================================================================
    op.execute('''
        CREATE TABLE mtr_follow_ups (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            patient_id UUID NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
            review_id UUID NOT NULL REFERENCES mtr_sessions(id) ON DELETE CASCADE,
            type VARCHAR(30) NOT NULL,
            priority VARCHAR(10) NOT NULL DEFAULT 'medium',
            description TEXT NOT NULL,
            objectives JSONB NOT NULL DEFAULT '[]'::jsonb,
            scheduled_date TIMESTAMPTZ NOT NULL,
            estimated_duration INTEGER NOT NULL DEFAULT 30,
            assigned_to UUID NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'scheduled',
            completed_at TIMESTAMPTZ,
            rescheduled_from TIMESTAMPTZ,
            rescheduled_reason VARCHAR(500),
            reminders JSONB NOT NULL DEFAULT '[]'::jsonb,
            outcome JSONB,
            related_interventions JSONB NOT NULL DEFAULT '[]'::jsonb,
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            created_by UUID NOT NULL,
            updated_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_mtr_follow_ups_review ON mtr_follow_ups(review_id, created_at)')
    op.execute('''
        CREATE INDEX idx_mtr_follow_ups_workplace_scheduled
        ON mtr_follow_ups(workplace_id, status, scheduled_date)
    ''')
    op.execute('CREATE INDEX idx_mtr_follow_ups_assignee ON mtr_follow_ups(assigned_to, scheduled_date)')

    # ==========================================================================
    # Audit log
    # ==========================================================================
    op.execute('''
        CREATE TABLE audit_logs (
            id UUID PRIMARY KEY,
            workplace_id UUID NOT NULL REFERENCES workplaces(id) ON DELETE CASCADE,
            actor_user_id UUID,
            event_type VARCHAR(50) NOT NULL,
            target_type VARCHAR(50),
            target_id UUID,
            details JSONB,
            ip_address VARCHAR(45),
            user_agent VARCHAR(500),
            request_id VARCHAR(64),
            prev_hash VARCHAR(64),
            entry_hash VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_audit_workplace_created ON audit_logs(workplace_id, created_at)')
    op.execute('''
        CREATE INDEX idx_audit_workplace_event_created
        ON audit_logs(workplace_id, event_type, created_at)
    ''')
    op.execute('''
        CREATE INDEX idx_audit_workplace_actor_created
        ON audit_logs(workplace_id, actor_user_id, created_at)
    ''')
    op.execute('CREATE INDEX idx_audit_target ON audit_logs(target_type, target_id)')


def downgrade() -> None:
    """Drop MTR tables."""

    # Drop tables in reverse order (respecting foreign keys)
    op.execute('DROP TABLE IF EXISTS audit_logs')
    op.execute('DROP TABLE IF EXISTS mtr_follow_ups')
    op.execute('DROP TABLE IF EXISTS mtr_interventions')
    op.execute('DROP TABLE IF EXISTS drug_therapy_problems')
    op.execute('DROP INDEX IF EXISTS uq_mtr_active_session_per_patient')
    op.execute('DROP TABLE IF EXISTS mtr_sessions')
    op.execute('DROP TABLE IF EXISTS workplace_counters')
    op.execute('DROP TABLE IF EXISTS patients')
    op.execute('DROP TABLE IF EXISTS workplaces')
