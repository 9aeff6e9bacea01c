from paywatch.models.companies import Company
from paywatch.models.payments import Payment
from paywatch.models.reminders import ReminderLog

__all__ = [
    "Company",
    "Payment",
    "ReminderLog",
]
