from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from loguru import logger
from typing import Optional

from holy_travels.models import User
from holy_travels.auth.schemas import UserCreate
from holy_travels.auth.utils import get_password_hash, verify_password
from holy_travels.errors import ValidationError
from holy_travels.travellers.service import TravellerService

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create_user(db: Session, user: UserCreate, role: str = "user") -> User:
        """Create a new user together with an empty traveller profile"""
        db_user = User(
            name=user.name,
            email=user.email,
            phone=user.phone,
            password=get_password_hash(user.password),
            role=role
        )

        try:
            db.add(db_user)
            db.flush()
            TravellerService(db).get_or_create(db_user.id)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError("Email already registered")

        db.refresh(db_user)
        logger.bind(event="user_register").info("Registered user {}", db_user.id)
        return db_user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        user = UserService.get_user_by_email(db, email)
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.password):
            return None
        return user
