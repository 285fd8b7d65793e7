from __future__ import annotations

import argparse
import secrets
import string

from app.config import build_sqlalchemy_db_url, settings
from app.database import Base, SessionLocal, engine
from app.models.user import User
from app.services.access_policy import SYSTEM_CALLER
from app.services.profile_store import ProfileStore
from app.utils.password_hash import hash_password


def _ensure_tables() -> None:
    db_url = build_sqlalchemy_db_url(settings)
    if db_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


def _generate_password(length: int = 20) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description=(
            "Create an admin account, or promote an existing account to admin. "
            "Admins can read every registration; the role is never set through the form."
        )
    )
    parser.add_argument("--email", required=True, help="Admin user email")
    parser.add_argument("--password", default=None, help="Password for a new account (generated if omitted)")
    parser.add_argument("--demote", action="store_true", help="Set the account back to role=user")

    args = parser.parse_args(argv)
    email = args.email.strip().lower()

    _ensure_tables()

    password = args.password or _generate_password()
    role = "user" if args.demote else "admin"

    with SessionLocal() as db:
        store = ProfileStore(db, SYSTEM_CALLER)
        user = db.query(User).filter(User.email == email).first()
        created = user is None
        if created:
            user = User(email=email, password=hash_password(password))
            db.add(user)
            db.commit()
            db.refresh(user)

        user_id = user.id
        store.ensure_profile(user_id, email)
        profile = store.set_role(user_id, role)
        profile_role = profile.role

    if created:
        # Print the password so the operator can log in immediately.
        print(f"created user id={user_id} email={email}")
        if args.password is None:
            print(f"generated password: {password}")
    print(f"user id={user_id} role={profile_role}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
