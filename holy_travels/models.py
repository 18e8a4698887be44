from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, ForeignKey, Numeric, JSON,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from holy_travels.database import Base

# SQLite only autoincrements INTEGER primary keys
PrimaryKey = BigInteger().with_variant(Integer(), "sqlite")

# ================================
# Users
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(PrimaryKey, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20))
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user", index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="user")
    traveller = relationship("Traveller", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")

# ================================
# Tour Catalog
# ================================
class Tour(Base):
    __tablename__ = "tours"

    id = Column(PrimaryKey, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)
    short_description = Column(Text)
    category = Column(String(100), nullable=False, index=True)
    duration_days = Column(Integer, nullable=False)
    duration_nights = Column(Integer)
    price_amount = Column(Numeric(10, 2), nullable=False)
    price_discounted_amount = Column(Numeric(10, 2))
    price_currency = Column(String(3), default="INR")
    departure_city = Column(String(100))
    max_group_size = Column(Integer, default=50)
    difficulty = Column(String(20), default="easy")
    average_rating = Column(Numeric(3, 2), default=0)
    total_reviews = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, index=True)
    is_featured = Column(Boolean, default=False, index=True)
    created_by = Column(PrimaryKey, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    destinations = relationship(
        "TourDestination", back_populates="tour",
        order_by="TourDestination.position", cascade="all, delete-orphan"
    )
    start_dates = relationship(
        "TourStartDate", back_populates="tour",
        order_by="TourStartDate.date", cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="tour")

    @property
    def unit_price(self):
        """Per-passenger price: the discounted amount when one is set"""
        if self.price_discounted_amount is not None:
            return self.price_discounted_amount
        return self.price_amount

class TourDestination(Base):
    __tablename__ = "tour_destinations"

    id = Column(PrimaryKey, primary_key=True, index=True)
    tour_id = Column(PrimaryKey, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    type = Column(String(20))
    description = Column(Text)

    # Relationships
    tour = relationship("Tour", back_populates="destinations")

# ================================
# Seat Inventory (one row per departure)
# ================================
class TourStartDate(Base):
    __tablename__ = "tour_start_dates"
    __table_args__ = (
        UniqueConstraint("tour_id", "date", name="uq_tour_start_date"),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_available_seats_range"
        ),
    )

    id = Column(PrimaryKey, primary_key=True, index=True)
    tour_id = Column(PrimaryKey, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    available_seats = Column(Integer, nullable=False)
    total_seats = Column(Integer, nullable=False)
    status = Column(String(20), default="upcoming", index=True)

    # Relationships
    tour = relationship("Tour", back_populates="start_dates")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(PrimaryKey, primary_key=True, index=True)
    booking_id = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(PrimaryKey, ForeignKey("users.id"), nullable=False, index=True)
    tour_id = Column(PrimaryKey, ForeignKey("tours.id"), nullable=False, index=True)
    tour_date = Column(Date, nullable=False, index=True)
    total_passengers = Column(Integer, nullable=False)

    # Pricing
    base_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), default=0)
    taxes = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), default=0, nullable=False)

    # Payment
    payment_status = Column(String(20), default="pending", nullable=False, index=True)
    payment_method = Column(String(20))
    order_id = Column(String(64), index=True)
    order_amount = Column(Numeric(10, 2))
    transaction_id = Column(String(64), index=True)

    # Lifecycle
    status = Column(String(20), default="pending", nullable=False, index=True)
    contact_name = Column(String(255))
    contact_phone = Column(String(20))
    contact_email = Column(String(255))
    special_requests = Column(Text)
    admin_notes = Column(Text)
    ticket_details = Column(JSON)
    hotel_details = Column(JSON)

    # Cancellation
    cancellation_reason = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))
    refund_amount = Column(Numeric(10, 2))
    refund_status = Column(String(20))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="bookings")
    tour = relationship("Tour", back_populates="bookings")
    passengers = relationship(
        "Passenger", back_populates="booking",
        order_by="Passenger.position", cascade="all, delete-orphan"
    )

class Passenger(Base):
    __tablename__ = "passengers"

    id = Column(PrimaryKey, primary_key=True, index=True)
    booking_id = Column(PrimaryKey, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    age = Column(Integer)
    gender = Column(String(10))
    age_category = Column(String(10), default="adult")
    phone = Column(String(20))
    price = Column(Numeric(10, 2))

    # Relationships
    booking = relationship("Booking", back_populates="passengers")

# ================================
# Traveller Profiles
# ================================
class Traveller(Base):
    __tablename__ = "travellers"

    id = Column(PrimaryKey, primary_key=True, index=True)
    user_id = Column(PrimaryKey, ForeignKey("users.id"), unique=True, nullable=False)
    total_trips = Column(Integer, default=0, nullable=False)
    loyalty_points = Column(Integer, default=0, nullable=False)
    membership_tier = Column(String(20), default="bronze", nullable=False, index=True)
    current_tour_id = Column(PrimaryKey, ForeignKey("tours.id"))
    current_booking_id = Column(PrimaryKey, ForeignKey("bookings.id"))
    dietary_preferences = Column(String(20), default="veg")
    special_requirements = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="traveller")
    current_tour = relationship("Tour", foreign_keys=[current_tour_id])
    current_booking = relationship("Booking", foreign_keys=[current_booking_id])
    travel_history = relationship(
        "TravelHistory", back_populates="traveller",
        order_by="TravelHistory.id", cascade="all, delete-orphan"
    )

class TravelHistory(Base):
    __tablename__ = "travel_history"

    id = Column(PrimaryKey, primary_key=True, index=True)
    traveller_id = Column(PrimaryKey, ForeignKey("travellers.id", ondelete="CASCADE"), nullable=False, index=True)
    tour_id = Column(PrimaryKey, ForeignKey("tours.id"))
    booking_id = Column(PrimaryKey, ForeignKey("bookings.id"), unique=True)
    start_date = Column(Date)
    end_date = Column(Date)
    destinations = Column(JSON, default=list)
    rating = Column(Integer)
    feedback = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    traveller = relationship("Traveller", back_populates="travel_history")
    tour = relationship("Tour")

# ================================
# Notification Outbox
# ================================
class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(PrimaryKey, primary_key=True, index=True)
    aggregate_type = Column(String(50), nullable=False)
    aggregate_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    payload = Column(JSON, default=dict)
    dedupe_key = Column(String(200), unique=True, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    published_at = Column(DateTime(timezone=True))
