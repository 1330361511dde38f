from app.models.purchase import Purchase
from app.models.access_profile import AccessProfile

__all__ = [
    "Purchase",
    "AccessProfile",
]
