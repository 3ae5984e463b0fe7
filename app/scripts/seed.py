"""Sample data seeder for local development and demos."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models import Advisor, AutomationRule, Lead, RoutingRule, Team

PROGRAMS = ["MBA", "Computer Science", "Data Science", "Law", "Nursing", "Business"]
COUNTRIES = ["US", "CA", "UK", "IN", "NG", "AE", "DE"]
SOURCES = ["web", "social_media", "event", "referral", "email", "ads", "forms"]
STATUSES = ["new", "contacted", "qualified", "nurturing"]
ACTIVITY_TYPES = ["email_opened", "call", "form_submitted", "campus_visit"]
DOCUMENT_SETS = [
    [],
    ["transcript"],
    ["transcript", "passport"],
    ["transcript", "passport", "ielts"],
]


async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_maker() as session:
        print("Seeding routing engine sample data")

        # TRUNCATE ... CASCADE handles FK ordering
        await session.execute(
            text(
                "TRUNCATE TABLE "
                "conversion_records, "
                "students, "
                "automation_lead_states, "
                "automation_execution_logs, "
                "automation_rules, "
                "rule_execution_logs, "
                "lead_routing_rules, "
                "round_robin_cursors, "
                "leads, "
                "advisors, "
                "teams "
                "CASCADE"
            )
        )
        await session.commit()
        print("Cleared existing data")

        # 1. Teams
        graduate = Team(
            name="Graduate Admissions", region="North America", specializations=["MBA", "Law"]
        )
        technology = Team(
            name="Technology Programs",
            region="Global",
            specializations=["Computer Science", "Data Science"],
        )
        international = Team(name="International Office", region="Global", specializations=[])
        session.add_all([graduate, technology, international])
        await session.flush()
        print("Created 3 teams")

        # 2. Advisors; an empty specialization list inherits the team's
        advisor_specs = [
            (graduate, ["MBA"], 12, 42.5, 1.5),
            (graduate, None, 10, 31.0, 3.0),
            (graduate, ["Law"], 8, 27.5, 6.0),
            (technology, None, 10, 35.0, 2.0),
            (technology, ["Data Science"], 10, 22.0, 9.5),
            (international, ["Nursing", "Business"], 15, 18.0, 4.0),
            (international, None, 15, 25.5, 2.5),
            (international, None, 5, 12.0, 12.0),
        ]
        advisors = []
        for i, (team, specs, capacity, rate, response) in enumerate(advisor_specs, 1):
            advisor = Advisor(
                team_id=team.team_id,
                full_name=f"Advisor {i} Example",
                email=f"advisor{i}@admissions.example.edu",
                specializations=specs,
                current_assignments=0,
                max_daily_assignments=capacity,
                is_active=i != len(advisor_specs),
                conversion_rate=Decimal(str(rate)),
                average_response_time_hours=Decimal(str(response)),
            )
            session.add(advisor)
            advisors.append(advisor)
        await session.flush()
        print(f"Created {len(advisors)} advisors")

        # 3. Routing rules, highest priority first
        routing_rules = [
            RoutingRule(
                name="MBA applicants to Graduate Admissions",
                description="MBA interest with a qualifying score",
                priority=10,
                conditions={
                    "op": "and",
                    "conditions": [
                        {"op": "equals", "field": "program", "value": "MBA"},
                        {"op": "range", "field": "score", "min": 60},
                    ],
                },
                assignment_config={"method": "workload_based", "team_id": str(graduate.team_id)},
            ),
            RoutingRule(
                name="Technology programs",
                priority=8,
                conditions={
                    "op": "in_set",
                    "field": "program",
                    "values": ["Computer Science", "Data Science"],
                },
                assignment_config={"method": "ai_based", "team_id": str(technology.team_id)},
            ),
            RoutingRule(
                name="International leads",
                priority=6,
                conditions={
                    "op": "not",
                    "condition": {"op": "in_set", "field": "country", "values": ["US", "CA"]},
                },
                assignment_config={
                    "method": "round_robin",
                    "team_id": str(international.team_id),
                },
            ),
            RoutingRule(
                name="Everything else",
                description="Catch-all; keep at the lowest priority",
                priority=1,
                conditions={},
                assignment_config={"method": "round_robin"},
            ),
        ]
        session.add_all(routing_rules)
        await session.flush()
        print(f"Created {len(routing_rules)} routing rules")

        # 4. Automation rules
        automation_rules = [
            AutomationRule(
                name="Hot lead alert",
                description="Alert the advisor when a lead reaches 80",
                trigger_type="score_threshold",
                conditions={"minScore": 80},
                actions=["send_alert", "prioritize_lead"],
            ),
            AutomationRule(
                name="Inactive lead nudge",
                trigger_type="time_based",
                conditions={"daysInactive": 7, "excludeStatuses": ["nurturing"]},
                actions=["send_email", "create_task"],
            ),
            AutomationRule(
                name="Campus visit follow-up",
                trigger_type="activity_based",
                conditions={"activityType": "campus_visit"},
                actions=["create_urgent_task"],
            ),
            AutomationRule(
                name="Qualified lead to registrar",
                trigger_type="status_change",
                conditions={"toStatus": "qualified"},
                actions=["notify_registrar"],
            ),
        ]
        session.add_all(automation_rules)
        await session.flush()
        print(f"Created {len(automation_rules)} automation rules")

        # 5. Leads, unassigned so they can be routed through the API
        now = datetime.now(timezone.utc)
        leads = []
        for i in range(40):
            activity_count = i % 6
            lead = Lead(
                first_name=["Amina", "Diego", "Priya", "Chen", "Olu"][i % 5],
                last_name=["Khan", "Garcia", "Sharma", "Wei", "Adeyemi"][i % 5],
                email=f"lead{i}@example.com",
                phone=f"+1555010{i:04d}" if i % 7 else None,
                country=COUNTRIES[i % len(COUNTRIES)],
                source=SOURCES[i % len(SOURCES)],
                status=STATUSES[i % len(STATUSES)],
                lead_score=(i * 7) % 101,
                program_interest=[PROGRAMS[i % len(PROGRAMS)]],
                documents_submitted=DOCUMENT_SETS[i % len(DOCUMENT_SETS)],
                activity_count=activity_count,
                last_activity_at=(now - timedelta(days=i % 12)) if activity_count else None,
                last_activity_type=ACTIVITY_TYPES[i % len(ACTIVITY_TYPES)] if activity_count else None,
            )
            session.add(lead)
            leads.append(lead)
        await session.commit()
        print(f"Created {len(leads)} leads")

        # Validation
        lead_cnt = (await session.execute(select(func.count()).select_from(Lead))).scalar_one()
        advisor_cnt = (
            await session.execute(select(func.count()).select_from(Advisor))
        ).scalar_one()
        print("\nValidation:")
        print(f"  Leads: {lead_cnt}")
        print(f"  Advisors: {advisor_cnt}")
        print("Seeding complete")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
