"""
Mock Data Generator for the RSVP API
Run this script to populate your development database with realistic test data.

Usage:
    python create_mock_data.py

Requirements:
    pip install faker
"""

import random
from datetime import datetime, timedelta
from faker import Faker
from sqlalchemy.orm import Session

from rsvp_app.database import SessionLocal, init_db
from rsvp_app.models import User, Event, ResponseRecord
from rsvp_app.models.enums import EventStatus, ResponseType, RsvpVisibility
from rsvp_app.services.actors import GuestActor, actor_from_user
from rsvp_app.services.response_service import (
    PolicyError,
    ResponseService,
    ValidationError,
)
from rsvp_app.services.response_store import SQLAlchemyResponseStore

# Initialize Faker
fake = Faker()


class MockDataGenerator:
    def __init__(self, db: Session):
        self.db = db
        self.users = []
        self.events = []
        self.service = ResponseService(db, store=SQLAlchemyResponseStore(db))

    def clear_existing_data(self):
        """Clear existing data (use with caution!)"""
        print("🗑️  Clearing existing data...")

        # Delete in reverse dependency order
        self.db.query(ResponseRecord).delete()
        self.db.query(Event).delete()
        self.db.query(User).delete()

        self.db.commit()
        print("✅ Existing data cleared")

    def create_users(self, count: int = 15):
        print(f"👤 Creating {count} users...")

        for _ in range(count):
            user = User(
                email=fake.unique.email(),
                display_name=fake.name(),
                phone_number=fake.numerify("+1##########"),
                is_active=True,
            )
            self.db.add(user)
            self.users.append(user)

        self.db.commit()

    def create_events(self, count: int = 6):
        print(f"📅 Creating {count} events...")

        for _ in range(count):
            title = f"{fake.word().title()} {random.choice(['Party', 'Dinner', 'Game Night', 'BBQ'])}"
            event = Event(
                slug=f"{fake.slug()}-{fake.unique.random_int(1000, 9999)}",
                title=title,
                description=fake.paragraph(),
                date=datetime.utcnow() + timedelta(days=random.randint(3, 60)),
                location=fake.address(),
                status=random.choice([EventStatus.OPEN.value, EventStatus.ACTIVE.value]),
                host_id=random.choice(self.users).id,
                allow_guest_rsvp=random.random() > 0.2,
                allow_plus_one=random.random() > 0.3,
                max_guests_per_rsvp=random.randint(1, 5),
                rsvp_visibility=random.choice([v.value for v in RsvpVisibility]),
                show_rsvps_to_invitees=random.random() > 0.5,
                rsvp_visibility_threshold=random.randint(2, 8),
            )
            self.db.add(event)
            self.events.append(event)

        self.db.commit()

    def create_responses(self):
        print("✉️  Creating responses...")
        created = 0

        for event in self.events:
            responders = random.sample(self.users, k=min(len(self.users), 8))
            actors = [actor_from_user(user) for user in responders if user.id != event.host_id]
            actors += [
                GuestActor(name=fake.name(), email=fake.unique.email())
                for _ in range(random.randint(0, 5))
            ]

            for actor in actors:
                response_type = random.choice(list(ResponseType))
                guest_count = random.randint(1, event.max_guests_per_rsvp)
                try:
                    self.service.submit_response(
                        event,
                        actor,
                        response_type,
                        guest_count=guest_count,
                        comments=fake.sentence() if random.random() > 0.7 else None,
                    )
                    created += 1
                except (PolicyError, ValidationError):
                    # Event settings reject some combinations
                    continue

        print(f"✅ {created} responses created")

    def generate_all_data(self, clear_existing: bool = False):
        if clear_existing:
            self.clear_existing_data()

        self.create_users()
        self.create_events()
        self.create_responses()

        print("\n📊 Summary:")
        print(f"   - Users: {len(self.users)}")
        print(f"   - Events: {len(self.events)}")
        for event in self.events:
            counts = self.service.get_aggregate_counts(event)
            print(f"   - {event.slug}: {counts.to_dict()}")


def main():
    """Main function to run the mock data generator"""
    print("🎉 RSVP Mock Data Generator")
    print("=" * 40)

    init_db()
    db = SessionLocal()

    try:
        generator = MockDataGenerator(db)

        clear_existing = input("Clear existing data? (y/N): ").lower().startswith("y")

        generator.generate_all_data(clear_existing=clear_existing)

        print("\n✅ Mock data generation successful!")

    except Exception as e:
        print(f"\n❌ Error generating mock data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
