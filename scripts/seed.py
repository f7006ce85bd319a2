#!/usr/bin/env python3
"""
Seed script: creates demo validators and evidence items.
Run after migrations: python scripts/seed.py
"""

import asyncio
import json
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from esla.config import settings
from esla.database import get_engine_url_and_connect_args


VALIDATORS = [
    {"id": "val-alice", "name": "Alice", "specs": ["fitness", "nutrition"], "rating": 4.8, "cap": 5},
    {"id": "val-bob", "name": "Bob", "specs": ["fitness"], "rating": 4.5, "cap": 5},
    {"id": "val-carol", "name": "Carol", "specs": ["finance"], "rating": 4.9, "cap": 3},
    {"id": "val-dave", "name": "Dave", "specs": ["fitness", "finance"], "rating": 3.9, "cap": None},
]

EVIDENCE = [
    {"id": "ev-1001", "challenge": "ch-run-100k", "user": "user-1", "spec": "fitness", "priority": "STANDARD"},
    {"id": "ev-1002", "challenge": "ch-run-100k", "user": "user-2", "spec": "fitness", "priority": "PRIORITY"},
    {"id": "ev-2001", "challenge": "ch-save-1k", "user": "user-3", "spec": "finance", "priority": "URGENT"},
    {"id": "ev-3001", "challenge": "ch-journal", "user": "user-1", "spec": None, "priority": "STANDARD"},
]


async def seed():
    url, connect_args = get_engine_url_and_connect_args(settings.database_url)
    engine = create_async_engine(url, connect_args=connect_args)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        for v in VALIDATORS:
            result = await session.execute(
                text("SELECT validator_id FROM validators WHERE validator_id = :vid"),
                {"vid": v["id"]},
            )
            if result.fetchone():
                print(f"Validator {v['id']} already exists, skipping.")
                continue
            await session.execute(
                text("""
                    INSERT INTO validators
                        (validator_id, display_name, is_active, specializations, rating, max_open_assignments)
                    VALUES (:vid, :name, true, CAST(:specs AS jsonb), :rating, :cap)
                """),
                {
                    "vid": v["id"],
                    "name": v["name"],
                    "specs": json.dumps(v["specs"]),
                    "rating": v["rating"],
                    "cap": v["cap"],
                },
            )
        await session.commit()

        for e in EVIDENCE:
            await session.execute(
                text("""
                    INSERT INTO evidence (evidence_id, challenge_id, user_id, required_specialization, priority)
                    VALUES (:eid, :cid, :uid, :spec, :prio)
                    ON CONFLICT (evidence_id) DO NOTHING
                """),
                {
                    "eid": e["id"],
                    "cid": e["challenge"],
                    "uid": e["user"],
                    "spec": e["spec"],
                    "prio": e["priority"],
                },
            )
        await session.commit()

    await engine.dispose()

    print("Seed complete.")
    print(f"  Validators: {', '.join(v['id'] for v in VALIDATORS)}")
    print(f"  Evidence:   {', '.join(e['id'] for e in EVIDENCE)}")
    print("Submit one with:")
    print(
        '  curl -X POST localhost:8000/v1/validations -H "Content-Type: application/json" '
        '-d \'{"evidence_id": "ev-1001", "user_id": "user-1", "challenge_id": "ch-run-100k"}\''
    )


if __name__ == "__main__":
    asyncio.run(seed())
