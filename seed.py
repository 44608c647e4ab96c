from loguru import logger
from sqlmodel import Session, SQLModel, select
from agrolink.core.security import create_access_token
from agrolink.db.core import engine
from agrolink.db.schema import User, UserRole, UserStatus


# Demo accounts for local development. Users normally come from the
# platform's registration flow; this service only reads them.
DEMO_USERS = [
    {"email": "admin@agrolink.dev", "full_name": "Platform Admin", "role": UserRole.APP_ADMIN},
    {"email": "farm@agrolink.dev", "full_name": "Green Valley Farms", "role": UserRole.FARM_ADMIN,
     "profile_data": {"farm_name": "Green Valley", "farm_size_hectares": 120}},
    {"email": "farmer@agrolink.dev", "full_name": "Joseph Mwangi", "role": UserRole.FARMER,
     "profile_data": {"commodities": ["maize", "beans"]}},
    {"email": "lorry@agrolink.dev", "full_name": "Rift Haulage", "role": UserRole.LORRY_AGENCY,
     "profile_data": {"fleet_size": 8}},
    {"email": "equipment@agrolink.dev", "full_name": "TractorHire Ltd", "role": UserRole.FIELD_EQUIPMENT_MANAGER},
    {"email": "inputs@agrolink.dev", "full_name": "SeedCo Supplies", "role": UserRole.INPUT_SUPPLIER},
    {"email": "dealer@agrolink.dev", "full_name": "Grain Traders Co", "role": UserRole.DEALER},
]


def seed_users(session: Session) -> list[User]:
    """Creates the demo users if they don't exist."""
    logger.info("--- Seeding Users ---")
    users = []

    for data in DEMO_USERS:
        user = session.exec(select(User).where(User.email == data["email"])).first()
        if not user:
            user = User(
                status=UserStatus.ACTIVE,
                email_verified=True,
                **data
            )
            session.add(user)
            session.flush()
            logger.info(f"Created User: {user.email} ({user.role.value})")
        else:
            logger.info(f"Existing User: {user.email}")
        users.append(user)

    return users


def main():
    # Local development shortcut. Deployed databases are managed by Alembic.
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        try:
            users = seed_users(session)
            session.commit()

            for user in users:
                logger.info(f"Dev token for {user.email}: {create_access_token(user.id)}")

            logger.info("Database seeding completed successfully.")

        except Exception as e:
            session.rollback()
            logger.error(f"Seeding failed: {e}")
            raise e


if __name__ == "__main__":
    main()
