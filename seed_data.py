#!/usr/bin/env python3

from datetime import date, timedelta
from decimal import Decimal

from holy_travels.database import Base, SessionLocal, engine
from holy_travels.models import (
    Booking, OutboxEvent, Passenger, Tour, TourDestination, TourStartDate,
    Traveller, TravelHistory, User
)
from holy_travels.auth.schemas import UserCreate
from holy_travels.auth.service import UserService
from holy_travels.tours.schemas import DestinationInfo, StartDateInput, TourCreate
from holy_travels.tours.service import TourService

def _departures(first_in_days: int, every_days: int, count: int, seats: int):
    start = date.today() + timedelta(days=first_in_days)
    return [
        StartDateInput(date=start + timedelta(days=every_days * index), total_seats=seats)
        for index in range(count)
    ]

TOURS = [
    TourCreate(
        title="Mathura Vrindavan Divine Yatra",
        description=(
            "Explore the land of Lord Krishna. Visit Krishna Janmabhoomi, Banke Bihari Temple, "
            "Prem Mandir and ISKCON Temple, and attend the evening Yamuna Aarti."
        ),
        short_description="Sacred journey to Mathura and Vrindavan temples",
        category="pilgrimage",
        duration_days=3,
        duration_nights=2,
        price_amount=Decimal("6500"),
        price_discounted_amount=Decimal("5500"),
        departure_city="Nagpur",
        max_group_size=45,
        is_featured=True,
        destinations=[
            DestinationInfo(name="Mathura", type="religious"),
            DestinationInfo(name="Vrindavan", type="religious"),
            DestinationInfo(name="Gokul", type="religious"),
        ],
        start_dates=_departures(20, 10, 4, 45),
    ),
    TourCreate(
        title="Dwarka Somnath Divine Darshan",
        description=(
            "Dwarkadhish Temple, Somnath Jyotirlinga, Nageshwar and Bet Dwarka island "
            "along the Arabian Sea coast."
        ),
        short_description="Dwarka and the first Jyotirlinga, Somnath",
        category="pilgrimage",
        duration_days=5,
        duration_nights=4,
        price_amount=Decimal("15000"),
        price_discounted_amount=Decimal("13500"),
        departure_city="Nagpur",
        max_group_size=40,
        is_featured=True,
        destinations=[
            DestinationInfo(name="Dwarka", type="religious"),
            DestinationInfo(name="Somnath", type="religious"),
            DestinationInfo(name="Bet Dwarka", type="scenic"),
        ],
        start_dates=_departures(25, 15, 3, 40),
    ),
    TourCreate(
        title="Kashi Vishwanath and Prayagraj Sangam",
        description="Ganga Aarti at Dashashwamedh Ghat, Kashi Vishwanath darshan and a holy dip at the Sangam.",
        short_description="Varanasi and Prayagraj in four days",
        category="jyotirlinga",
        duration_days=4,
        duration_nights=3,
        price_amount=Decimal("9000"),
        departure_city="Nagpur",
        max_group_size=30,
        difficulty="moderate",
        destinations=[
            DestinationInfo(name="Varanasi", type="religious"),
            DestinationInfo(name="Sarnath", type="historic"),
            DestinationInfo(name="Prayagraj", type="religious"),
        ],
        start_dates=_departures(30, 14, 3, 30),
    ),
]

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for Holy Travels...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(OutboxEvent).delete()
        db.query(TravelHistory).delete()
        db.query(Traveller).delete()
        db.query(Passenger).delete()
        db.query(Booking).delete()
        db.query(TourStartDate).delete()
        db.query(TourDestination).delete()
        db.query(Tour).delete()
        db.query(User).delete()
        db.commit()

        # 1. Create users
        print("Creating users...")
        admin = UserService.create_user(
            db,
            UserCreate(name="Holy Travels Admin", email="admin@holytravels.com", password="admin123", phone="7898360491"),
            role="super_admin"
        )
        UserService.create_user(
            db,
            UserCreate(name="Demo User", email="demo@holytravels.com", password="user123", phone="9999999999")
        )

        # 2. Create tours
        print("Creating tours...")
        service = TourService(db)
        tours = [service.create_tour(tour, created_by=admin.id) for tour in TOURS]

        print("✅ Successfully created seed data for Holy Travels!")
        print(f"Created:")
        print(f"  - 2 users (admin@holytravels.com / admin123, demo@holytravels.com / user123)")
        print(f"  - {len(tours)} tours")
        print(f"  - {sum(len(tour.start_dates) for tour in tours)} departures")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
