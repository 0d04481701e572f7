from app.models.user import User
from app.models.daily_record import DailyRecord
from app.models.monthly_summary import MonthlySummary

__all__ = [
    "User",
    "DailyRecord",
    "MonthlySummary",
]
