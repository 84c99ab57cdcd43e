"""Seed database with default users and workflow templates."""
from datetime import timedelta

from taskflow.auth import create_access_token
from taskflow.database import SessionLocal
from taskflow.seed import seed_default_users, seed_default_workflows


def seed():
    """Seed database; safe to run repeatedly."""
    db = SessionLocal()

    try:
        users = seed_default_users(db)
        workflows = seed_default_workflows(db, creator=users[0])
        db.commit()

        print("Database seeded successfully!")
        print("\nDefault workflows:")
        for workflow in workflows:
            print(f"  {workflow.name} ({len(workflow.stages)} stages)")

        # Tokens are normally issued by the identity service.
        print("\nDevelopment tokens (valid 7 days):")
        for user in users:
            token = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(days=7))
            print(f"  {user.role}: {token}")

    except Exception as e:
        db.rollback()
        print(f"Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
