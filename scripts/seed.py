#!/usr/bin/env python3
"""
Seed script: creates demo committee members with API keys, three demo
decisions (draft, open, closed) with judgments and comments, the
organization's grant history, and two grant opportunities with alerts.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys
from uuid import uuid4

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from deliberate.auth.middleware import hash_api_key
from deliberate.config import settings
from deliberate.database import get_engine_url_and_connect_args
from deliberate.models import Decision, GrantOpportunityRecord, OrgGrantHistory, User
from deliberate.services.lifecycle import DecisionLifecycle
from deliberate.storage.repositories import SqlStorage


# Demo API keys - printed for the user
DEMO_USERS = [
    ("sk_demo_chair_12345", "chair@example.org", "chair", "Dana", "Reyes"),
    ("sk_demo_treasurer_12345", "treasurer@example.org", "treasurer", "Sam", "Okafor"),
    ("sk_demo_director_12345", "director@example.org", "director", "Lee", "Park"),
]

DEMO_DECISIONS = [
    {
        "title": "Open a second cafe location",
        "description": "Lease a storefront in the next town to expand supported employment for program participants.",
        "category": "Strategic",
        "final_status": "closed",
        "scores": [
            (7, "Demand at the first cafe supports a second site within two years."),
            (4, "Staffing ratios would stretch our direct support professionals too thin."),
            (9, "A second site doubles competitive integrated employment placements."),
        ],
        "outcome": "Approved with a phased staffing plan.",
    },
    {
        "title": "Raise DSP starting wage to $19/hr",
        "description": "Increase the starting wage for direct support professionals to reduce turnover.",
        "category": "Financial",
        "final_status": "open",
        "scores": [
            (8, "Turnover costs exceed the wage increase within the first year."),
            (6, "Affordable only if the waiver rate increase arrives on schedule."),
        ],
        "outcome": None,
    },
    {
        "title": "Adopt supported decision-making policy",
        "description": "Replace guardianship referrals with a supported decision-making framework.",
        "category": "Programmatic",
        "final_status": "draft",
        "scores": [],
        "outcome": None,
    },
]

GRANT_HISTORY = [
    ("Chester County Community Foundation", 50000, 2025, "Cafe job-coach program"),
    ("Pennsylvania Developmental Disabilities Council", 75000, 2024, "Employment pathways pilot"),
    ("Phoenixville Community Health Foundation", 40000, 2024, "Art studio expansion"),
    ("United Way of Chester County", 25000, 2023, None),
]

# (opportunity fields, relevance score, reason, matched keywords)
DEMO_GRANTS = [
    (
        {
            "external_id": "HHS-2026-ACL-0142",
            "title": "Direct Support Workforce Stabilization",
            "agency": "Administration for Community Living",
            "funding_category": "Health",
            "award_floor": 100000,
            "award_ceiling": 400000,
            "close_date": "2026-12-15",
        },
        88.0,
        "Targets DSP recruitment and retention for I/DD providers.",
        ["direct support", "workforce", "intellectual disabilities"],
    ),
    (
        {
            "external_id": "ED-2026-OSERS-0031",
            "title": "Transition to Competitive Integrated Employment",
            "agency": "Department of Education",
            "funding_category": "Education",
            "award_floor": 50000,
            "award_ceiling": None,
            "close_date": None,
        },
        72.5,
        "Supports employment pathways for young adults aging out of IDEA services.",
        ["employment", "transition"],
    ),
]


async def seed():
    url, connect_args = get_engine_url_and_connect_args(settings.database_url)
    engine = create_async_engine(url, connect_args=connect_args)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        users = []
        for api_key, email, username, first_name, last_name in DEMO_USERS:
            api_key_hash = hash_api_key(api_key)
            result = await session.execute(select(User).where(User.api_key_hash == api_key_hash))
            user = result.scalar_one_or_none()
            if user:
                print(f"User {username} already exists, using existing.")
            else:
                user = User(
                    id=str(uuid4()),
                    email=email,
                    username=username,
                    first_name=first_name,
                    last_name=last_name,
                    api_key_hash=api_key_hash,
                )
                session.add(user)
            users.append(user)
        await session.commit()

        result = await session.execute(select(func.count()).select_from(Decision).where(Decision.is_demo))
        if result.scalar_one():
            print("Demo decisions already exist, skipping.")
        else:
            storage = SqlStorage(session)
            lifecycle = DecisionLifecycle(storage, noise_threshold=settings.noise_threshold)
            author = users[0]
            for demo in DEMO_DECISIONS:
                decision = await storage.create_decision(
                    title=demo["title"],
                    description=demo["description"],
                    category=demo["category"],
                    status="open" if demo["scores"] else "draft",
                    deadline=None,
                    outcome=None,
                    author_id=author.id,
                    is_demo=True,
                )
                for member, (score, rationale) in zip(users, demo["scores"]):
                    await lifecycle.submit_judgment(decision.id, member.id, score, rationale)
                await lifecycle.add_comment(
                    decision.id, author.id, "Please submit your independent judgment before discussing."
                )
                if demo["final_status"] == "closed":
                    await lifecycle.update_decision(
                        decision.id,
                        {"status": "closed", "outcome": demo["outcome"], "consensus_reached": True},
                        user_id=author.id,
                    )
                noise = await lifecycle.compute_noise(decision.id)
                print(
                    f"Decision {decision.id} [{demo['final_status']}] {demo['title']}: "
                    f"mean={noise.mean} stdDev={noise.std_dev} highNoise={noise.is_high_noise}"
                )
            await session.commit()

        result = await session.execute(select(func.count()).select_from(OrgGrantHistory))
        if result.scalar_one():
            print("Grant history already seeded.")
        else:
            for funder_name, amount, year, notes in GRANT_HISTORY:
                session.add(OrgGrantHistory(funder_name=funder_name, amount=amount, year=year, notes=notes))
            await session.commit()

        result = await session.execute(select(func.count()).select_from(GrantOpportunityRecord))
        if result.scalar_one():
            print("Grant opportunities already seeded.")
        else:
            storage = SqlStorage(session)
            result = await session.execute(
                select(Decision).where(Decision.is_demo, Decision.status == "open")
            )
            wage_decision = result.scalars().first()
            for fields, score, reason, keywords in DEMO_GRANTS:
                grant = await storage.upsert_grant_opportunity(**fields)
                await storage.create_grant_alert(grant.id, score, reason, keywords)
                if wage_decision is not None and fields["funding_category"] == "Health":
                    await storage.link_grant_to_decision(wage_decision.id, grant.id, users[0].id)
            await session.commit()

    await engine.dispose()

    print("\n--- Seed complete ---")
    for api_key, email, *_ in DEMO_USERS:
        print(f"API Key ({email}): {api_key}")
    print("Use: Authorization: Bearer <api key>")
    print(f"Set ADMIN_EMAILS={DEMO_USERS[0][1]} to grant admin access.")


if __name__ == "__main__":
    asyncio.run(seed())
