"""
Initialize database — creates all tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed-demo]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from datetime import datetime
from sqlalchemy import inspect, text
from vigil.database import SessionLocal, create_tables, engine
from vigil.config import settings
from vigil.models.alert_rule import AlertRule

DEMO_RULES = [
    {"name": "Person after hours", "severity": "high", "object_types": ["person"],
     "schedule": {"start_time": "22:00", "end_time": "06:00"}, "cooldown_seconds": 600},
    {"name": "Crowd", "severity": "medium", "object_types": ["person"], "min_objects": 5},
    {"name": "Vehicle in restricted zone", "severity": "critical", "object_types": ["car", "truck"],
     "zone_ids": ["restricted"], "min_confidence": 0.7},
]


def seed_demo_rules():
    db = SessionLocal()
    try:
        for rule in DEMO_RULES:
            if db.query(AlertRule).filter(AlertRule.name == rule["name"]).first():
                print(f"   · {rule['name']} (exists)")
                continue
            now = datetime.utcnow()
            db.add(AlertRule(**rule, created_at=now, updated_at=now))
            print(f"   ✓ {rule['name']}")
        db.commit()
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create Vigil tables")
    parser.add_argument("--seed-demo", action="store_true", help="Insert example alert rules")
    args = parser.parse_args()

    print("🗄️  Vigil DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {engine.url.render_as_string(hide_password=True)}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print(f"\nCheck DATABASE_URL (currently {settings.DATABASE_URL.split('@')[-1]})")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ {len(tables)} tables ready:")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed_demo:
        print("\n📐 Seeding demo rules...")
        seed_demo_rules()

    print("\n🎉 Database ready! You can now start the backend:")
    print(f"   uvicorn vigil.main:app --host 0.0.0.0 --port {settings.BACKEND_PORT}")


if __name__ == "__main__":
    main()
