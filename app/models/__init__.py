# __init__.py
from app.models.profile import Profile
from app.models.user import User

__all__ = [
	"Profile",
	"User",
]
